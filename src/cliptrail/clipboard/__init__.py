from cliptrail.clipboard.base import ClipboardBackend
from cliptrail.clipboard.factory import get_clipboard, get_clipboard_class

__all__ = [
    'ClipboardBackend',
    'get_clipboard',
    'get_clipboard_class',
]
