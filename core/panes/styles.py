from rich.style import Style

ACCENT = "#4ecca3"
DANGER = "#e94560"
MODIFIED = "#f0a500"
DIM = "#555555"

ACCENT_TEXT = Style(color=ACCENT)
DIM_TEXT = Style(color=DIM)
ERROR_TEXT = Style(color=DANGER)
SUCCESS_TEXT = Style(color=ACCENT)
MODIFIED_TEXT = Style(color=MODIFIED)
DELETED_TEXT = Style(color=DANGER, dim=True, strike=True)
NEW_ROW_TEXT = Style(color=ACCENT)
NULL_TEXT = Style(color=DIM, italic=True)
BANNER_TEXT = Style(color=ACCENT, bold=True)

HEADER = Style(color=ACCENT, bold=True)
CELL_SELECTED = Style(reverse=True)
CELL_EDITING = Style(color=ACCENT, underline=True)
SEARCH_LABEL = Style(color=MODIFIED, bold=True)
SEARCH_INPUT = Style(color=MODIFIED)

ITEM_ACTIVE = Style(color=ACCENT, bold=True)
ITEM_CURSOR = Style(reverse=True)

STATUS_BAR = Style(color="#cccccc", bgcolor="#333333")
STATUS_ERROR = Style(color=DANGER, bgcolor="#333333")
STATUS_SUCCESS = Style(color=ACCENT, bgcolor="#333333")
