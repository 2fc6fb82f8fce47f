"""Presentation grouping of assistant content blocks."""

from session_lens.models import ContentBlock, TextContent


def group_content_blocks(blocks: list[ContentBlock]) -> list[list[ContentBlock]]:
    """Split content blocks into display groups.

    Every text block stands alone; each maximal run of thinking and tool call
    blocks between them forms one group. Order is preserved, so flattening the
    groups gives back the input.

    Args:
        blocks: Content blocks of one assistant turn

    Returns:
        List of non-empty groups
    """
    groups: list[list[ContentBlock]] = []
    run: list[ContentBlock] = []

    for block in blocks:
        if isinstance(block, TextContent):
            if run:
                groups.append(run)
                run = []
            groups.append([block])
        else:
            run.append(block)

    if run:
        groups.append(run)
    return groups


def flatten(groups: list[list[ContentBlock]]) -> list[ContentBlock]:
    return [block for group in groups for block in group]
