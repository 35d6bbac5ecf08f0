"""Recount denormalized counters from their relation rows.

Counters only drift if a write bypassed the relation service. This script
recomputes them from the join tables and overwrites the stored values:

    feedline-reconcile like --target <post_id>
    feedline-reconcile follow --all
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from feedline.core.errors import EngagementError
from feedline.core.settings import settings
from feedline.db.store import RelationStore, get_store
from feedline.models import RelationKind
from feedline.services.relations import RelationService, get_spec

logger = logging.getLogger(__name__)


async def reconcile_target(service: RelationService, kind: RelationKind, target_id: str) -> dict[str, int]:
    counts = await service.reconcile(target_id, kind)
    spec = get_spec(kind)
    if any(counter.owner == "actor" for counter in spec.counters):
        counts.update(await service.reconcile_actor(target_id, kind))
    return counts


async def reconcile_all(store: RelationStore, kind: RelationKind) -> int:
    """Reconcile every target of ``kind``. Returns how many entities were rewritten."""
    service = RelationService(store)
    spec = get_spec(kind)
    targets = await store.query(spec.target_model)
    fixed = 0
    for target in targets:
        try:
            await reconcile_target(service, kind, target.id)
        except EngagementError as err:
            logger.warning("Could not reconcile %s %s: %s", kind.value, target.id, err)
            continue
        fixed += 1
    return fixed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Recount engagement counters")
    parser.add_argument("kind", choices=[kind.value for kind in RelationKind])
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--target", help="Entity id whose counters should be recounted")
    group.add_argument("--all", action="store_true", help="Recount every entity of the namespace")
    return parser


async def run(args: argparse.Namespace, store: RelationStore | None = None) -> int:
    store = store or get_store()
    kind = RelationKind(args.kind)
    if args.all:
        fixed = await reconcile_all(store, kind)
        print(f"Reconciled {fixed} {kind.value} targets")
        return 0
    try:
        counts = await reconcile_target(RelationService(store), kind, args.target)
    except EngagementError as err:
        print(f"error: {err}", file=sys.stderr)
        return 1
    print(f"Reconciled {kind.value} counters of {args.target}: {counts}")
    return 0


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=settings.log_level.upper())
    args = build_parser().parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
