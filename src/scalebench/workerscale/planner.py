"""Allocation planner for worker scale-up.

New capacity is spread as evenly as possible across provisioning groups:
groups are bucketed by their current replica count and the lowest bucket
is always grown first, one replica per group per pass.

Usage::

    from scalebench.workerscale.planner import plan_allocation

    plan = plan_allocation({2: ["ms-a", "ms-b"], 3: ["ms-c"]}, additional=2)
    # {"ms-a": GroupMutation(2, 3), "ms-b": GroupMutation(2, 3)}
"""

from __future__ import annotations

import bisect
import logging

from .types import GroupMutation, MutationPlan, plan_total

logger = logging.getLogger(__name__)


def plan_allocation(
    replica_groups: dict[int, list[str]],
    additional: int,
    max_replicas: int | None = None,
) -> MutationPlan:
    """Plan ``additional`` single-replica increments across groups.

    Args:
        replica_groups: Current replica count -> group names at that count
        additional: Number of nodes to add (0 is a no-op)
        max_replicas: Optional per-group replica cap; groups at the cap are
            never grown

    Returns:
        Mapping of group name -> GroupMutation. The plan holds fewer than
        ``additional`` increments when every group hits the cap.

    Raises:
        ValueError: If ``additional`` is negative
    """
    if additional < 0:
        raise ValueError(f"additional worker count must be >= 0, got {additional}")

    plan: MutationPlan = {}
    remaining = additional
    if remaining == 0:
        return plan

    buckets: dict[int, list[str]] = {count: list(names) for count, names in replica_groups.items()}
    keys = sorted(buckets)

    i = 0
    while i < len(keys) and remaining > 0:
        value = keys[i]
        if max_replicas is not None and value >= max_replicas:
            break

        promoted: list[str] = []
        for name in buckets[value]:
            if remaining == 0:
                break
            mutation = plan.get(name)
            if mutation is None:
                plan[name] = GroupMutation(previous_replicas=value, target_replicas=value + 1)
            else:
                mutation.target_replicas = value + 1
            promoted.append(name)
            remaining -= 1

        if promoted:
            nxt = value + 1
            if nxt not in buckets:
                buckets[nxt] = []
                bisect.insort(keys, nxt)
            buckets[nxt].extend(promoted)
        i += 1

    if remaining:
        logger.warning(
            "Only %d of %d additional nodes could be planned; all groups are at their cap",
            plan_total(plan),
            additional,
        )
    return plan
