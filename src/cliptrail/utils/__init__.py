from cliptrail.utils.file_manager import ResourceManager
from cliptrail.utils.signature import SignatureEngine
from cliptrail.utils.text_policy import TextPolicy

__all__ = [
    'ResourceManager',
    'SignatureEngine',
    'TextPolicy',
]
