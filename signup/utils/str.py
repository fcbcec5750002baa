def parse_env_var_to_list(env_var: str, separator: str = "|") -> list[str]:
    """Split `a|b|c` style config values, dropping blanks."""
    items = (item.strip() for item in (env_var or "").split(separator))
    return [item for item in items if item]


def parse_env_var_to_dict(env_var: str, separator: str = "|", assign: str = "=") -> dict[str, str]:
    """
    Parse `NAME=value|OTHER=value` into a dict with uppercased keys.
    Entries without an `=` or with an empty side are skipped.
    """
    pairs = {}
    for item in parse_env_var_to_list(env_var, separator):
        key, _, value = item.partition(assign)
        key, value = key.strip(), value.strip()
        if key and value:
            pairs[key.upper()] = value
    return pairs


def mask_token(token: str, visible: int = 6) -> str:
    """Shorten a token for log output."""
    if not token:
        return ""
    return f"{token[:visible]}…"
