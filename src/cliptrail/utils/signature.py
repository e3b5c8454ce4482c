import hashlib
from typing import Optional

from cliptrail.models.entry import RawImage, RawItem, RawText


class SignatureEngine:
    """Content fingerprints used for deduplication.

    Strong signatures cover the full content (sha256). Interim signatures
    are cheap keys the change detector uses to decide whether a clipboard
    read is worth handing over for full processing; they never decide
    deduplication.
    """

    def __init__(self, interim_text_limit: int = 4096):
        self.interim_text_limit = interim_text_limit

    def text(self, text: str) -> str:
        digest = hashlib.sha256(b"text:")
        digest.update(text.encode("utf-8", errors="surrogatepass"))
        return digest.hexdigest()

    def image(self, data: bytes, width: int, height: int) -> str:
        digest = hashlib.sha256(f"image:{width}x{height}:".encode("ascii"))
        digest.update(data)
        return digest.hexdigest()

    def of(self, raw: RawItem) -> Optional[str]:
        if isinstance(raw, RawText):
            return self.text(raw.text)
        if isinstance(raw, RawImage):
            return self.image(raw.data, raw.width, raw.height)
        return None

    def interim_text(self, text: str) -> str:
        if len(text) <= self.interim_text_limit:
            return f"text:{text}"
        return "text#" + self.text(text)

    def interim_image(self, data: bytes, width: int, height: int) -> str:
        quick = hashlib.blake2b(data, digest_size=8).hexdigest()
        return f"image:{width}x{height}:{len(data)}:{quick}"
