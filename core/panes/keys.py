from typing import Optional

# Key names as Textual reports them
ESCAPE = "escape"
ENTER = "enter"
TAB = "tab"
SHIFT_TAB = "shift+tab"
BACKSPACE = "backspace"
DELETE = "delete"
UP = "up"
DOWN = "down"
LEFT = "left"
RIGHT = "right"
HOME = "home"
END = "end"
PAGE_UP = "pageup"
PAGE_DOWN = "pagedown"
CTRL_U = "ctrl+u"


def typed_char(character: Optional[str]) -> Optional[str]:
    """The printable character a key press inserts, if any."""
    if character and len(character) == 1 and character.isprintable():
        return character
    return None
