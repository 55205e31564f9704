"""
Chained checkpoint store for a single interrupt generator.

Layout (one directory per generator, owned exclusively by one store):

    <base_dir>/<generator>/state.meta.md
    <base_dir>/<generator>/state_<epoch-ms>_<full|partial>_<md5>.md

Every save writes a new immutable entry whose trailer links to the
previous head. The chain is a backward singly-linked list that ends at a
full entry or at an entry with no predecessor. Partial entries hold only
new sections; reads replay them onto the nearest full entry.

Failure semantics:
- "Not found" means "no state yet": empty metadata, empty state.
- A chain entry missing mid-walk stops the walk; whatever was collected
  is used (logged, not fatal).
- Every other I/O error is logged and re-raised to the caller.
"""

from __future__ import annotations

import asyncio
import hashlib
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from constants import (
    FULL_STATE_INTERVAL_DEFAULT,
    STATE_BASE_DIR_NAME,
    STATE_FILES_INDEX_CAP,
    STATE_META_FILENAME,
)
from observability.logger import ComponentLogger, default_logger
from state_store.meta_codec import STATE_FILES_KEY, format_meta, parse_meta
from state_store.sections import merge_sections


# Store-owned metadata fields; callers cannot overwrite them via update()
_STORE_OWNED_KEYS = (
    "currentStateFile",
    "lastUpdated",
    "isCurrentStateFull",
    STATE_FILES_KEY,
)

_TAG = re.compile(r"^<!-- (Previous State|State Type|Created): (.+?) -->$")


# ---------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class StateChainEntry:
    """One persisted chain entry, trailer already split off."""
    filename: str
    content: str
    is_full: bool
    created_at: str | None
    previous_file: str | None


class CheckpointPolicy:
    """
    Decides whether the next save is a full checkpoint.

    After exactly full_state_interval consecutive partial saves the next
    save is full and the partial counter resets to 0.
    """

    def __init__(
        self,
        full_state_interval: int = FULL_STATE_INTERVAL_DEFAULT,
        partial_count: int = 0,
    ) -> None:
        if full_state_interval < 1:
            raise ValueError("full_state_interval must be >= 1")
        self.full_state_interval = full_state_interval
        self.partial_count = partial_count

    def next_is_full(self, *, force: bool = False) -> bool:
        if force or self.partial_count >= self.full_state_interval:
            self.partial_count = 0
            return True
        self.partial_count += 1
        return False


# ---------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------

class StateStore:
    """
    Per-generator persistence with full/partial checkpoints.

    All file access runs in worker threads; callers await the result.
    """

    def __init__(
        self,
        generator_name: str,
        *,
        base_dir: Path | str | None = None,
        log: ComponentLogger | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.generator_name = generator_name
        root = Path(base_dir) if base_dir is not None else Path.cwd() / STATE_BASE_DIR_NAME
        self.state_dir = root / generator_name
        self.meta_path = self.state_dir / STATE_META_FILENAME
        self.current_state_file: str | None = None
        self._log = log or default_logger(f"state_store.{generator_name}")
        self._clock = clock or _now_ms

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    async def load_meta(self) -> dict[str, Any]:
        """Read the metadata document; empty mapping if none exists yet."""
        await self._ensure_directory()
        try:
            content = await asyncio.to_thread(self.meta_path.read_text, encoding="utf-8")
        except FileNotFoundError:
            self._log.debug("meta_not_found", generator=self.generator_name)
            return {}
        except OSError as exc:
            self._log.error(
                "meta_load_failed",
                generator=self.generator_name,
                error=f"{type(exc).__name__}: {exc}",
            )
            raise

        meta = parse_meta(content)
        if meta.get("currentStateFile"):
            self.current_state_file = meta["currentStateFile"]
        return meta

    async def save_meta(self, meta: dict[str, Any]) -> None:
        await self._ensure_directory()
        try:
            await asyncio.to_thread(
                self.meta_path.write_text, format_meta(meta), encoding="utf-8"
            )
        except OSError as exc:
            self._log.error(
                "meta_save_failed",
                generator=self.generator_name,
                error=f"{type(exc).__name__}: {exc}",
            )
            raise
        self._log.debug("meta_saved", generator=self.generator_name)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save_state(self, content: str, is_full: bool = False) -> str:
        """
        Append a chain entry linked to the current head and advance the head.

        Returns:
            The new entry's filename.
        """
        meta = await self.load_meta()
        previous = meta.get("currentStateFile") or None

        filename = await self._write_entry(content, is_full, previous)
        now_iso = _iso(self._clock())

        meta["currentStateFile"] = filename
        meta["lastUpdated"] = now_iso
        meta["isCurrentStateFull"] = is_full

        index = list(meta.get(STATE_FILES_KEY) or [])
        index.insert(0, {
            "filename": filename,
            "timestamp": now_iso,
            "isFullState": is_full,
        })
        meta[STATE_FILES_KEY] = index[:STATE_FILES_INDEX_CAP]

        await self.save_meta(meta)
        self.current_state_file = filename

        self._log.debug(
            "state_saved",
            generator=self.generator_name,
            filename=filename,
            is_full=is_full,
        )
        return filename

    async def update(
        self,
        content: str,
        meta: dict[str, Any],
        is_full: bool = False,
    ) -> str:
        """
        Save a chain entry and merge caller metadata in one operation.

        Caller fields overlay the persisted metadata; store-owned fields
        (head pointer, index, timestamps) always come from the store.
        """
        filename = await self.save_state(content, is_full)

        persisted = await self.load_meta()
        merged = {**persisted}
        for key, value in meta.items():
            if key not in _STORE_OWNED_KEYS:
                merged[key] = value

        await self.save_meta(merged)
        return filename

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def load_state(self) -> str:
        """
        Return the reconstructed current state.

        Full head: returned as-is. Partial head: walk back to the nearest
        full entry, then layer newer partials on top in chronological
        order (sections already present are never overwritten).
        """
        meta = await self.load_meta()
        head = meta.get("currentStateFile")
        if not head:
            self._log.debug("no_current_state", generator=self.generator_name)
            return ""

        entry = await self._read_entry(head)
        if entry is None:
            self._log.error(
                "current_state_missing",
                generator=self.generator_name,
                filename=head,
            )
            return ""

        if entry.is_full:
            return entry.content

        chain = await self._walk(head, stop_at_full=True)
        if not any(e.is_full for e in chain):
            self._log.warning(
                "no_full_state_in_chain",
                generator=self.generator_name,
                entries=len(chain),
            )

        chain.reverse()
        if not chain:
            return ""

        merged = chain[0].content
        for newer in chain[1:]:
            merged = merge_sections(merged, newer.content)
        return merged

    async def get_state_history(self) -> list[StateChainEntry]:
        """Every reachable chain entry, oldest first, without merging."""
        meta = await self.load_meta()
        head = meta.get("currentStateFile")
        if not head:
            return []

        chain = await self._walk(head, stop_at_full=False)
        chain.reverse()
        return chain

    async def list_state_files(self) -> list[dict[str, Any]]:
        """The capped index kept in metadata (newest first)."""
        meta = await self.load_meta()
        return list(meta.get(STATE_FILES_KEY) or [])

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _ensure_directory(self) -> None:
        try:
            await asyncio.to_thread(self.state_dir.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            self._log.error(
                "state_dir_create_failed",
                generator=self.generator_name,
                error=f"{type(exc).__name__}: {exc}",
            )
            raise

    async def _walk(self, head: str, *, stop_at_full: bool) -> list[StateChainEntry]:
        """Follow Previous State links from head; newest first."""
        chain: list[StateChainEntry] = []
        seen: set[str] = set()
        current: str | None = head

        while current:
            if current in seen:
                self._log.error(
                    "state_chain_cycle",
                    generator=self.generator_name,
                    filename=current,
                )
                break
            seen.add(current)

            entry = await self._read_entry(current)
            if entry is None:
                self._log.error(
                    "state_chain_entry_missing",
                    generator=self.generator_name,
                    filename=current,
                )
                break

            chain.append(entry)
            if stop_at_full and entry.is_full:
                break
            current = entry.previous_file

        return chain

    async def _read_entry(self, filename: str) -> StateChainEntry | None:
        path = self.state_dir / filename
        try:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            self._log.error(
                "state_load_failed",
                generator=self.generator_name,
                filename=filename,
                error=f"{type(exc).__name__}: {exc}",
            )
            raise
        return split_trailer(filename, raw)

    async def _write_entry(
        self,
        content: str,
        is_full: bool,
        previous: str | None,
    ) -> str:
        await self._ensure_directory()

        digest = hashlib.md5(content.encode("utf-8")).hexdigest()
        kind = "full" if is_full else "partial"
        ts_ms = self._clock()
        path = self.state_dir / f"state_{ts_ms}_{kind}_{digest}.md"
        # Entries are immutable: never reuse a name
        while path.exists():
            ts_ms += 1
            path = self.state_dir / f"state_{ts_ms}_{kind}_{digest}.md"

        tags = []
        if previous:
            tags.append(f"<!-- Previous State: {previous} -->")
        tags.append(f"<!-- State Type: {kind} -->")
        tags.append(f"<!-- Created: {_iso(self._clock())} -->")
        body = content.rstrip("\n") + "\n\n" + "\n".join(tags) + "\n"

        try:
            await asyncio.to_thread(path.write_text, body, encoding="utf-8")
        except OSError as exc:
            self._log.error(
                "state_save_failed",
                generator=self.generator_name,
                error=f"{type(exc).__name__}: {exc}",
            )
            raise
        return path.name


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def split_trailer(filename: str, raw: str) -> StateChainEntry:
    """Separate chain-entry content from its trailer tags."""
    previous: str | None = None
    is_full = False
    created: str | None = None
    kept: list[str] = []

    for line in raw.split("\n"):
        match = _TAG.match(line.strip())
        if not match:
            kept.append(line)
            continue
        name, value = match.groups()
        if name == "Previous State":
            previous = value
        elif name == "State Type":
            is_full = value == "full"
        else:
            created = value

    return StateChainEntry(
        filename=filename,
        content="\n".join(kept).rstrip("\n"),
        is_full=is_full,
        created_at=created,
        previous_file=previous,
    )


def _iso(ts_ms: int) -> str:
    dt = datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _now_ms() -> int:
    return time.time_ns() // 1_000_000
