"""One round of deciding which control-plane resources go to which subscribers."""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Set

from .arbitration import ArbitrationCache, ResourceArbitrator
from .delivery_batch import DeliveryBatch, DeliveryBatchBuilder
from .delivery_explain import DeliveryDecisionTrace, DeliveryExplainSummary, response_kind
from .model import (
    ConnectResponse,
    ControlSnapshot,
    DataplaneIdentity,
    RoutePolicy,
    ServiceRef,
)
from .selector import (
    MatchPriority,
    Subscriber,
    evaluate_selector_match,
    matches_selectors,
    selector_from_response,
    selector_from_route_policy,
    selector_from_snapshot,
    selector_from_subscriber,
    target_key,
    to_model_target,
)


def subscriber_dataplane_id(subscriber: Optional[Subscriber]) -> str:
    if subscriber is None or subscriber.identity is None:
        return ""
    return subscriber.identity.dataplane_id


def ordered_subscribers(
    subscribers: Optional[Mapping[int, Optional[Subscriber]]],
) -> List[Optional[Subscriber]]:
    """Subscribers in ascending id order."""
    if not subscribers:
        return []
    return [subscribers[sid] for sid in sorted(subscribers)]


class DeliveryCycle:
    """Delivery decisions over a fixed set of snapshots and policies."""

    def __init__(
        self,
        snapshots: Optional[Iterable[Optional[ControlSnapshot]]] = None,
        policies: Optional[Iterable[Optional[RoutePolicy]]] = None,
    ) -> None:
        self.cache = ArbitrationCache(snapshots, policies)
        self._changed_snapshot_keys: Set[str] = set()
        self._delivered_policy_keys: Set[str] = set()

    def for_identity(self, identity: Optional[DataplaneIdentity]) -> ResourceArbitrator:
        return self.cache.for_identity(identity)

    def for_subscriber(self, subscriber: Optional[Subscriber]) -> ResourceArbitrator:
        return self.cache.for_subscriber(subscriber)

    def allows_policy(self, subscriber: Optional[Subscriber], policy: Optional[RoutePolicy]) -> bool:
        return self.for_subscriber(subscriber).allows_policy(policy)

    def allows_snapshot(
        self, subscriber: Optional[Subscriber], snapshot: Optional[ControlSnapshot]
    ) -> bool:
        return self.for_subscriber(subscriber).allows_snapshot(snapshot)

    def allows_response(
        self, subscriber: Optional[Subscriber], resp: Optional[ConnectResponse]
    ) -> bool:
        """Snapshots and policies must win arbitration; everything else passes."""
        if resp is None:
            return True
        if resp.service_snapshot is not None:
            return self.allows_snapshot(subscriber, resp.service_snapshot)
        if resp.service_snapshot_deleted is not None:
            return True
        if resp.route_policy is not None:
            return self.allows_policy(subscriber, resp.route_policy)
        return True

    def snapshot_for_subscriber_target(
        self, subscriber: Optional[Subscriber], target: ServiceRef
    ) -> Optional[ControlSnapshot]:
        snapshot = self.for_subscriber(subscriber).snapshot_for_target(target)
        if snapshot is None:
            return None
        if not matches_selectors(
            selector_from_subscriber(subscriber), selector_from_snapshot(snapshot, target, True)
        ):
            return None
        return snapshot

    def policy_for_subscriber_target(
        self, subscriber: Optional[Subscriber], target: ServiceRef
    ) -> Optional[RoutePolicy]:
        policy = self.for_subscriber(subscriber).policy_for_target(target)
        if policy is None:
            return None
        if not matches_selectors(
            selector_from_subscriber(subscriber), selector_from_route_policy(policy, target, True)
        ):
            return None
        return policy

    def remember_changed_snapshot(self, snapshot: Optional[ControlSnapshot]) -> None:
        if snapshot is None or snapshot.service is None:
            return
        self._changed_snapshot_keys.add(target_key(to_model_target(snapshot.service)))

    def remember_changed_snapshots(self, changed: Iterable[Optional[ControlSnapshot]]) -> None:
        for snapshot in changed or ():
            self.remember_changed_snapshot(snapshot)

    def has_changed_snapshot_for_target(self, target: ServiceRef) -> bool:
        return target_key(target) in self._changed_snapshot_keys

    def snapshot_for_subscribe_target(
        self, subscriber: Optional[Subscriber], target: ServiceRef
    ) -> Optional[ControlSnapshot]:
        """Snapshot to replay for a new subscription, unless it is already sent as changed."""
        if self.has_changed_snapshot_for_target(target):
            return None
        return self.snapshot_for_subscriber_target(subscriber, target)

    def policy_for_subscribe_target(
        self, subscriber: Optional[Subscriber], target: ServiceRef
    ) -> Optional[RoutePolicy]:
        """Policy to replay for a subscription; each policy is replayed once per cycle."""
        policy = self.policy_for_subscriber_target(subscriber, target)
        if policy is None:
            return None
        key = target_key(to_model_target(policy.service))
        if key in self._delivered_policy_keys:
            return None
        self._delivered_policy_keys.add(key)
        return policy

    def subscribe_batch(
        self,
        subscriber: Optional[Subscriber],
        targets: Iterable[ServiceRef],
        changed: Iterable[Optional[ControlSnapshot]],
    ) -> DeliveryBatch:
        """Changed snapshots first, then the snapshot and policy of each target."""
        changed = list(changed or ())
        self.remember_changed_snapshots(changed)
        builder = DeliveryBatchBuilder()
        builder.add_stream_snapshots(changed)
        for target in targets or ():
            builder.add_stream_snapshot(self.snapshot_for_subscribe_target(subscriber, target))
            builder.add_stream_policy(self.policy_for_subscribe_target(subscriber, target))
        return builder.build()

    def register_batch(self, identity: Optional[DataplaneIdentity]) -> DeliveryBatch:
        """Everything selected for an identity: snapshots, then policies."""
        arbitrator = self.for_identity(identity)
        builder = DeliveryBatchBuilder()
        builder.add_stream_snapshots(arbitrator.selected_snapshots())
        builder.add_stream_policies(arbitrator.selected_policies())
        return builder.build()

    def allows_target_response(
        self,
        subscriber: Optional[Subscriber],
        resp: Optional[ConnectResponse],
        target: ServiceRef,
    ) -> bool:
        if not matches_selectors(
            selector_from_subscriber(subscriber), selector_from_response(resp, target)
        ):
            return False
        return self.allows_response(subscriber, resp)

    def target_broadcast_batch(
        self,
        subscribers: Optional[Mapping[int, Optional[Subscriber]]],
        resp: Optional[ConnectResponse],
        target: ServiceRef,
    ) -> DeliveryBatch:
        """Plan pushes of a response to every subscriber that should get it."""
        if not subscribers or resp is None:
            return DeliveryBatch()
        builder = DeliveryBatchBuilder()
        for subscriber in ordered_subscribers(subscribers):
            if subscriber is None or subscriber.push_queue is None:
                continue
            if not self.allows_target_response(subscriber, resp, target):
                continue
            builder.add_push_response(subscriber.push_queue, resp)
        return builder.build()

    def explain_target_response(
        self,
        subscribers: Optional[Mapping[int, Optional[Subscriber]]],
        resp: Optional[ConnectResponse],
        target: ServiceRef,
    ) -> DeliveryExplainSummary:
        """Record, per subscriber, whether a broadcast would be delivered and why."""
        summary = DeliveryExplainSummary(response_kind=response_kind(resp), target=target)
        resource = selector_from_response(resp, target)
        for subscriber in ordered_subscribers(subscribers):
            if subscriber is None or subscriber.push_queue is None:
                continue
            match = evaluate_selector_match(selector_from_subscriber(subscriber), resource)
            if match.subscription == MatchPriority.EXACT:
                summary.subscription_exact += 1
            elif match.subscription == MatchPriority.FALLBACK:
                summary.subscription_fallback += 1
            if match.identity == MatchPriority.EXACT:
                summary.identity_exact += 1
            elif match.identity == MatchPriority.FALLBACK:
                summary.identity_fallback += 1

            if match.subscription == MatchPriority.NONE:
                summary.denied_subscription += 1
                decision = "denied_subscription"
            elif match.identity == MatchPriority.NONE:
                summary.denied_identity += 1
                decision = "denied_identity"
            elif not self.allows_response(subscriber, resp):
                summary.denied_arbitration += 1
                decision = "denied_arbitration"
            else:
                summary.delivered += 1
                decision = "delivered"
            summary.trace.append(
                DeliveryDecisionTrace(
                    dataplane_id=subscriber_dataplane_id(subscriber),
                    subscription_match=match.subscription_label(),
                    identity_match=match.identity_label(),
                    decision=decision,
                )
            )
        return summary