import re

_NON_ALNUM_RUN = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    if not value:
        return ""

    value = value.lower()
    value = _NON_ALNUM_RUN.sub("-", value)

    return value.strip("-")
