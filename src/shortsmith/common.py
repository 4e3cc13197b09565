"""shortsmith.common — shared formatting and path helpers."""

import re


# ── Path utilities ─────────────────────────────────────────────────

def resolve_path_vars(text: str, paths: dict[str, str]) -> str:
    """Replace ${name} variables in a string using the paths dict."""
    def _replace(match):
        key = match.group(1)
        if key not in paths:
            raise ValueError(f"Unknown path variable: ${{{key}}}")
        return paths[key]
    return re.sub(r"\$\{(\w+)\}", _replace, text)


# ── Time formatting ────────────────────────────────────────────────

def format_time(seconds: float) -> str:
    """Format a timeline offset as 'm:ss' (minutes are not wrapped)."""
    seconds = max(0.0, seconds)
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}:{secs:02d}"


def format_duration(seconds: float) -> str:
    """Format a clip length with one decimal, e.g. '12.5s'."""
    return f"{seconds:.1f}s"
