"""
Output redaction — literal replacement of secret values.

``StreamRedactor`` masks a child process stream chunk by chunk. By default
each chunk is masked on its own, so a value split across two chunks goes
through unmasked. ``hold_tail=True`` closes that gap by holding back any
chunk suffix that could start a secret until the next chunk (or ``flush``)
decides it.

The stream redactor applies longer values before shorter ones, so a secret
that contains another secret is never partly revealed.
"""
from typing import AnyStr, Iterable, Optional, Sequence

REDACTED = "[REDACTED]"


def mask_secrets(
    data: AnyStr,
    secrets: Iterable[AnyStr],
    marker: Optional[AnyStr] = None,
) -> AnyStr:
    """Replace every literal occurrence of each secret with ``marker``.

    Secrets are applied in the given order; empty values are skipped.
    No regular expressions are involved, so metacharacters need no escaping.

    Args:
        data: Text or bytes to mask.
        secrets: Secret values, same type as ``data``.
        marker: Replacement; defaults to ``[REDACTED]``.
    """
    if marker is None:
        marker = REDACTED.encode("utf-8") if isinstance(data, bytes) else REDACTED
    for secret in secrets:
        if secret:
            data = data.replace(secret, marker)
    return data


class StreamRedactor:
    """Masks one byte stream as it arrives."""

    def __init__(
        self,
        secrets: Sequence[str],
        marker: str = REDACTED,
        hold_tail: bool = False,
    ):
        self._secrets = sorted(
            (s.encode("utf-8") for s in secrets if s), key=len, reverse=True,
        )
        self._marker = marker.encode("utf-8")
        self.hold_tail = hold_tail
        self._pending = b""

    def _tail_length(self, data: bytes) -> int:
        """Longest suffix of ``data`` that is a proper prefix of a secret."""
        longest = 0
        for secret in self._secrets:
            for size in range(min(len(secret) - 1, len(data)), longest, -1):
                if data.endswith(secret[:size]):
                    longest = size
                    break
        return longest

    def _settle(self, data: bytes, cut: int) -> int:
        # move the cut before any occurrence it would split
        moved = True
        while moved:
            moved = False
            for secret in self._secrets:
                start = data.find(secret, max(0, cut - len(secret) + 1))
                if start != -1 and start < cut:
                    cut = start
                    moved = True
        return cut

    def feed(self, chunk: bytes) -> bytes:
        """Mask a chunk and return the bytes safe to forward now."""
        if not self.hold_tail:
            return mask_secrets(chunk, self._secrets, self._marker)
        data = self._pending + chunk
        cut = self._settle(data, len(data) - self._tail_length(data))
        self._pending = data[cut:]
        return mask_secrets(data[:cut], self._secrets, self._marker)

    def flush(self) -> bytes:
        """Mask and return whatever is still held back."""
        data, self._pending = self._pending, b""
        return mask_secrets(data, self._secrets, self._marker)
