"""Auto-detect the format of an API description."""

import yaml

FORMATS = ("openapi", "markdown")


def detect_format(text: str) -> str:
    """Detect whether ``text`` is an OpenAPI document or apiweaver Markdown.

    Returns: 'openapi' or 'markdown'.
    """
    # YAML also accepts JSON; Markdown with frontmatter fails as a multi-document stream
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError:
        return "markdown"
    if isinstance(data, dict) and ("openapi" in data or "swagger" in data):
        return "openapi"
    return "markdown"
