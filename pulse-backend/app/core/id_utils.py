import shortuuid


def generate_id(prefix: str | None = None) -> str:
    """Public record ids: 22-char shortuuid, optionally prefixed (``rcpt_...``)."""
    value = shortuuid.uuid()
    return f"{prefix}_{value}" if prefix else value
