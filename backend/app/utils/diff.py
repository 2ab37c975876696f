from __future__ import annotations
import difflib
import html
from typing import Optional

from app.utils.ipynb import notebook_lines

def _table(old: Optional[str], new: Optional[str], context: bool) -> str:
    return difflib.HtmlDiff(tabsize=2, wrapcolumn=92).make_table(
        notebook_lines(old),
        notebook_lines(new),
        fromdesc="Current",
        todesc="Proposed",
        context=context,
        numlines=3,
    )

def render_diff(old: Optional[str], new: Optional[str]) -> str:
    """Side-by-side table restricted to changed regions."""
    return _table(old, new, context=True)

def render_compare(old: Optional[str], new: Optional[str]) -> str:
    """Side-by-side table of both documents in full."""
    return _table(old, new, context=False)

def render_inline(old: Optional[str], new: Optional[str]) -> str:
    """Unified diff wrapped in a <pre> block."""
    lines = difflib.unified_diff(
        notebook_lines(old), notebook_lines(new),
        fromfile="current", tofile="proposed", lineterm="",
    )
    body = "\n".join(html.escape(line) for line in lines)
    return f'<pre class="diff-inline">{body}</pre>'
