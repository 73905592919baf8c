"""Structured JSON logging for scan debugging.

Records every chunk fetch, every log that failed to decode and the run summary
so that data gaps can be inspected after a run that completed anyway.
"""

from __future__ import annotations

import json
import os
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, ClassVar

from hexbytes import HexBytes

DEBUG_OUTPUT_ENV = "VAULTSCAN_DEBUG_OUTPUT"


def _hex(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return HexBytes(value).to_0x_hex()
    return value


class ScanDebugLogger:
    """Structured debug logger for log fetching and decoding.

    Outputs JSON Lines. Each entry carries a timestamp, a type, the current
    scan label and structured data.
    """

    _instance: ClassVar[ScanDebugLogger | None] = None
    _initialized: bool = False

    def __new__(cls) -> ScanDebugLogger:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return
        self._initialized = True
        self._output_path: Path | None = None
        self._file_handle: Any = None
        self._scan: str | None = None
        self._enabled: bool = False

    def configure(
        self,
        output_path: Path | str | None = None,
        scan: str | None = None,
    ) -> bool:
        """Configure the debug logger.

        Args:
            output_path: Path to write JSONL debug output. If None, uses the
                VAULTSCAN_DEBUG_OUTPUT environment variable.
            scan: Label attached to every entry, e.g. the vault address

        Returns:
            True if logging is enabled, False otherwise
        """
        if output_path is None:
            output_path = os.environ.get(DEBUG_OUTPUT_ENV)

        if not output_path:
            self._enabled = False
            return False

        if self._file_handle is not None:
            self.close()

        self._output_path = Path(output_path)
        self._scan = scan
        self._enabled = True

        self._output_path.parent.mkdir(parents=True, exist_ok=True)
        self._file_handle = self._output_path.open("a", buffering=1, encoding="utf-8")

        self._write_entry({
            "type": "session_start",
            "timestamp": datetime.now(tz=UTC).isoformat(),
        })
        return True

    def set_scan(self, scan: str | None) -> None:
        """Change the label attached to subsequent entries."""
        self._scan = scan

    def is_enabled(self) -> bool:
        return self._enabled

    def _write_entry(self, entry: dict[str, Any]) -> None:
        if not self._enabled or self._file_handle is None:
            return

        entry["_scan"] = self._scan

        try:
            self._file_handle.write(json.dumps(entry, default=str) + "\n")
        except OSError as e:
            sys.stderr.write(f"Failed to write debug log: {e}\n")

    def log_chunk(
        self,
        *,
        from_block: int,
        to_block: int,
        log_count: int,
        error: str | None = None,
    ) -> None:
        """Log the outcome of one eth_getLogs request."""
        if not self._enabled:
            return

        self._write_entry({
            "type": "chunk",
            "timestamp": datetime.now(tz=UTC).isoformat(),
            "from_block": from_block,
            "to_block": to_block,
            "log_count": log_count,
            "error": error,
        })

    def log_decode_error(self, *, reason: str, log: Mapping[str, Any]) -> None:
        """Log a log that matched a supported event but could not be decoded."""
        if not self._enabled:
            return

        self._write_entry({
            "type": "decode_error",
            "timestamp": datetime.now(tz=UTC).isoformat(),
            "reason": reason,
            "log": self._serialize_log(log),
        })

    def log_summary(self, **summary: Any) -> None:
        """Log the totals of a finished scan. Integers are written as decimal strings."""
        if not self._enabled:
            return

        self._write_entry({
            "type": "summary",
            "timestamp": datetime.now(tz=UTC).isoformat(),
            **{
                key: str(value)
                if isinstance(value, int) and not isinstance(value, bool)
                else value
                for key, value in summary.items()
            },
        })

    @staticmethod
    def _serialize_log(log: Mapping[str, Any]) -> dict[str, Any]:
        return {
            "address": _hex(log.get("address")),
            "blockNumber": log.get("blockNumber"),
            "transactionHash": _hex(log.get("transactionHash")),
            "logIndex": log.get("logIndex"),
            "topics": [_hex(topic) for topic in log.get("topics") or []],
            "data": _hex(log.get("data")),
        }

    def close(self) -> None:
        """Close the debug log file and write the session end marker."""
        if not self._enabled or self._file_handle is None:
            return

        self._write_entry({
            "type": "session_end",
            "timestamp": datetime.now(tz=UTC).isoformat(),
        })

        self._file_handle.close()
        self._file_handle = None
        self._enabled = False


# Global instance
scan_debug_logger = ScanDebugLogger()
