"""Pure functions flattening Notion block objects into Markdown-flavoured text.

Handles paragraphs, headings, list items, code, quotes, dividers and images.
Any other block type that carries rich_text falls back to its plain text.
"""


def rich_text_to_text(rich_text: list[dict]) -> str:
    """Join rich_text segments, keeping bold/italic/code/strikethrough/link formatting."""
    parts = []
    for segment in rich_text:
        text = segment.get("plain_text", "")
        annotations = segment.get("annotations") or {}
        if annotations.get("bold"):
            text = f"**{text}**"
        if annotations.get("italic"):
            text = f"*{text}*"
        if annotations.get("code"):
            text = f"`{text}`"
        if annotations.get("strikethrough"):
            text = f"~~{text}~~"
        if segment.get("href"):
            text = f"[{text}]({segment['href']})"
        parts.append(text)
    return "".join(parts)


def _block_rich_text(block: dict) -> str:
    body = block.get(block.get("type", ""), {}) or {}
    return rich_text_to_text(body.get("rich_text", []))


_HEADING_PREFIX = {"heading_1": "# ", "heading_2": "## ", "heading_3": "### "}


def block_to_text(block: dict) -> str:
    """Render a single block, including its trailing separator. Empty for unknown blocks."""
    block_type = block.get("type", "")

    if block_type == "paragraph":
        return _block_rich_text(block) + "\n\n"
    if block_type in _HEADING_PREFIX:
        return _HEADING_PREFIX[block_type] + _block_rich_text(block) + "\n\n"
    if block_type == "bulleted_list_item":
        return "- " + _block_rich_text(block) + "\n"
    if block_type == "numbered_list_item":
        return "1. " + _block_rich_text(block) + "\n"
    if block_type == "code":
        language = (block.get("code") or {}).get("language", "")
        return f"```{language}\n{_block_rich_text(block)}\n```\n\n"
    if block_type == "quote":
        return "> " + _block_rich_text(block) + "\n\n"
    if block_type == "divider":
        return "---\n\n"
    if block_type == "image":
        image = block.get("image") or {}
        url = (image.get("external") or {}).get("url") or (image.get("file") or {}).get("url")
        return f"![Image]({url})\n\n" if url else ""

    body = block.get(block_type)
    if isinstance(body, dict) and "rich_text" in body:
        return rich_text_to_text(body["rich_text"]) + "\n\n"
    return ""


def blocks_to_text(blocks: list[dict]) -> str:
    """Flatten a page's top-level blocks into a single normalized string."""
    return "".join(block_to_text(block) for block in blocks).strip()


def extract_title(properties: dict) -> str:
    """Return the plain text of the page's title property, or 'Untitled'."""
    for prop in properties.values():
        if prop.get("type") == "title":
            segments = prop.get("title") or []
            if segments:
                return "".join(s.get("plain_text", "") for s in segments) or "Untitled"
    return "Untitled"
