"""
Codec for the "extra" field.

Fields without a structural home travel in a single free-text field, one
`key:value` pair per line (HTTP header style), which is also how Zotero users
write their own notes into "extra".

No escaping is done: only the first colon of a line separates key and value,
so values may contain colons but keys may not, and nothing may contain a
newline.
"""


def pack(mapping) -> str:
    lines = []
    for key, value in mapping.items():
        lines.append(f"{key}:{'' if value is None else value}")
    return "\n".join(lines)


def unpack(text) -> dict:
    result = {}
    if not text:
        return result
    for line in text.split("\n"):
        key, sep, value = line.partition(":")
        # A line without separator keeps its key but has no value
        result[key] = value if sep else None
    return result
