"""
Interrupt-state directory bootstrap and inspection helpers.

Every generator owns a subdirectory of the base directory. The core
generators get a full initial state the first time the tree is set up;
later runs leave existing chains untouched.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from constants import CORE_GENERATORS
from observability.logger import ComponentLogger, default_logger
from state_store.store import StateStore


def _initial_state(generator: str, now_iso: str) -> str:
    return (
        f"# {generator} State\n"
        "\n"
        f"Created: {now_iso}\n"
        "Status: Initialized\n"
        "\n"
        "No interrupts have been triggered yet."
    )


async def setup_interrupt_state(
    base_dir: Path | str,
    *,
    generators: tuple[str, ...] = CORE_GENERATORS,
    log: ComponentLogger | None = None,
) -> list[str]:
    """
    Create the base directory and an initial full state per generator.

    Returns:
        The generators that were initialized by this call.
    """
    log = log or default_logger("state_store.setup")
    base = Path(base_dir)
    await _mkdir(base, log)

    initialized: list[str] = []
    for generator in generators:
        store = StateStore(generator, base_dir=base, log=log)
        meta = await store.load_meta()
        if meta.get("currentStateFile"):
            log.debug("initial_state_exists", generator=generator)
            continue

        now_iso = _utc_now_iso()
        await store.update(
            _initial_state(generator, now_iso),
            {
                "generatorType": generator,
                "createdAt": now_iso,
                "partialStateCount": 0,
                "configuration": {"initialized": True},
            },
            is_full=True,
        )
        initialized.append(generator)
        log.debug("initial_state_created", generator=generator)

    log.info("interrupt_state_ready", base_dir=str(base), initialized=initialized)
    return initialized


async def list_generators(base_dir: Path | str) -> list[str]:
    """Names of every generator directory under base_dir (sorted)."""
    base = Path(base_dir)
    await _mkdir(base, default_logger("state_store.setup"))

    def _scan() -> list[str]:
        return sorted(p.name for p in base.iterdir() if p.is_dir())

    return await asyncio.to_thread(_scan)


async def get_interrupt_states_summary(
    base_dir: Path | str,
    *,
    log: ComponentLogger | None = None,
) -> dict[str, dict[str, Any]]:
    """
    Per-generator view of the chain head and the state index.

    A generator whose metadata cannot be read is reported with an
    "error" entry instead of failing the whole summary.
    """
    log = log or default_logger("state_store.setup")
    summary: dict[str, dict[str, Any]] = {}

    for generator in await list_generators(base_dir):
        store = StateStore(generator, base_dir=base_dir, log=log)
        try:
            meta = await store.load_meta()
            files = await store.list_state_files()
        except OSError as exc:
            log.error(
                "generator_summary_failed",
                generator=generator,
                error=f"{type(exc).__name__}: {exc}",
            )
            summary[generator] = {"error": str(exc)}
            continue

        full = sum(1 for f in files if f.get("isFullState"))
        summary[generator] = {
            "currentStateFile": meta.get("currentStateFile"),
            "isCurrentStateFull": meta.get("isCurrentStateFull"),
            "lastUpdated": meta.get("lastUpdated"),
            "stateFilesCount": len(files),
            "fullStatesCount": full,
            "partialStatesCount": len(files) - full,
        }

    return summary


async def setup_token_monitor_rules(
    monitor_name: str,
    rules: list[dict[str, Any]],
    base_dir: Path | str,
    *,
    log: ComponentLogger | None = None,
) -> None:
    """Store detection rules in the metadata of token-monitor-<name>."""
    log = log or default_logger("state_store.setup")
    store = StateStore(f"token-monitor-{monitor_name}", base_dir=base_dir, log=log)

    meta = await store.load_meta()
    meta["rules"] = rules
    await store.save_meta(meta)

    log.info("token_monitor_rules_saved", monitor=monitor_name, rules=len(rules))


async def _mkdir(path: Path, log: ComponentLogger) -> None:
    try:
        await asyncio.to_thread(path.mkdir, parents=True, exist_ok=True)
    except OSError as exc:
        log.error(
            "state_base_dir_create_failed",
            base_dir=str(path),
            error=f"{type(exc).__name__}: {exc}",
        )
        raise


def _utc_now_iso() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")
