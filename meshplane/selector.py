"""Matching of control-plane resources against subscribers and dataplane identities."""

from __future__ import annotations

import queue
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Mapping, Optional

from .model import (
    ConnectResponse,
    ControlSnapshot,
    DataplaneIdentity,
    RoutePolicy,
    ServiceRef,
    SnapshotDeleted,
)


class MatchPriority(IntEnum):
    """How closely a resource matches; higher wins."""

    NONE = 0
    FALLBACK = 1
    EXACT = 2


def target_key(target: ServiceRef) -> str:
    """Key of a subscribed target: namespace, env and service, trimmed."""
    return f"{target.namespace.strip()}/{target.env.strip()}/{target.service.strip()}"


@dataclass(eq=False)
class Subscriber:
    """A connected dataplane with its identity, subscriptions and push queue."""

    identity: Optional[DataplaneIdentity] = None
    targets: Dict[str, ServiceRef] = field(default_factory=dict)
    push_queue: Optional[queue.Queue] = None
    subscriber_id: int = 0

    def track(self, target: ServiceRef) -> None:
        """Subscribe to a target; targets without a service name are ignored."""
        if not target.service.strip():
            return
        self.targets[target_key(target)] = target

    def should_receive(self, target: ServiceRef) -> bool:
        """True if resources for the target may be sent to this subscriber."""
        return selector_from_subscriber(self).accepts_target(target)


@dataclass(frozen=True)
class SubscriberSelector:
    """The parts of a subscriber that resource matching looks at."""

    identity: Optional[DataplaneIdentity] = None
    targets: Mapping[str, ServiceRef] = field(default_factory=dict)

    def accepts_target(self, target: ServiceRef) -> bool:
        return self.match_target(target) != MatchPriority.NONE

    def match_target(self, target: ServiceRef) -> MatchPriority:
        """Match a target against the subscriptions; no subscriptions accept all."""
        if not target.service.strip():
            return MatchPriority.FALLBACK
        if not self.targets:
            return MatchPriority.FALLBACK
        if target_key(target) in self.targets:
            return MatchPriority.EXACT
        if any(
            match_target_family(subscribed, target) == MatchPriority.FALLBACK
            for subscribed in self.targets.values()
        ):
            return MatchPriority.FALLBACK
        return MatchPriority.NONE


@dataclass(frozen=True)
class ResourceSelector:
    """What a resource requires of a subscriber to be delivered."""

    target: ServiceRef = field(default_factory=ServiceRef)
    service: Optional[ServiceRef] = None
    require_subscription: bool = False
    require_identity: bool = False


@dataclass(frozen=True)
class SelectorMatch:
    """Result of matching a resource against a subscriber."""

    subscription: MatchPriority = MatchPriority.EXACT
    identity: MatchPriority = MatchPriority.EXACT

    def matched(self) -> bool:
        return (
            self.subscription != MatchPriority.NONE
            and self.identity != MatchPriority.NONE
        )

    def subscription_label(self) -> str:
        return match_priority_label(self.subscription)

    def identity_label(self) -> str:
        return match_priority_label(self.identity)


def match_dimension(service_value: str, identity_value: str) -> MatchPriority:
    """Blank on either side is a fallback; equal values are exact."""
    service_value = service_value.strip()
    identity_value = identity_value.strip()
    if not service_value or not identity_value:
        return MatchPriority.FALLBACK
    if service_value == identity_value:
        return MatchPriority.EXACT
    return MatchPriority.NONE


def match_identity_scope(
    service: Optional[ServiceRef], identity: Optional[DataplaneIdentity]
) -> MatchPriority:
    """Match a resource's namespace and env against a dataplane identity."""
    if service is None or identity is None:
        return MatchPriority.FALLBACK
    namespace = match_dimension(service.namespace, identity.namespace)
    if namespace == MatchPriority.NONE:
        return MatchPriority.NONE
    env = match_dimension(service.env, identity.env)
    if env == MatchPriority.NONE:
        return MatchPriority.NONE
    if namespace == MatchPriority.EXACT and env == MatchPriority.EXACT:
        return MatchPriority.EXACT
    return MatchPriority.FALLBACK


def matches_dataplane_identity(
    service: Optional[ServiceRef], identity: Optional[DataplaneIdentity]
) -> bool:
    return match_identity_scope(service, identity) != MatchPriority.NONE


def resource_family_key(service: Optional[ServiceRef]) -> str:
    """Key shared by all envs of one service in one namespace."""
    if service is None:
        return ""
    return f"{service.namespace.strip()}/{service.service.strip()}"


def to_model_target(service: Optional[ServiceRef]) -> ServiceRef:
    if service is None:
        return ServiceRef()
    return ServiceRef(
        service=service.service,
        namespace=service.namespace,
        env=service.env,
        port=service.port,
    )


def _resource_selector(
    service: Optional[ServiceRef],
    fallback_target: ServiceRef,
    require_subscription: bool,
    require_identity: bool,
) -> ResourceSelector:
    target = fallback_target
    if not target.service.strip() and service is not None:
        target = to_model_target(service)
        require_subscription = True
    return ResourceSelector(
        target=target,
        service=service,
        require_subscription=require_subscription,
        require_identity=require_identity,
    )


def selector_from_snapshot(
    snapshot: Optional[ControlSnapshot],
    fallback_target: ServiceRef,
    require_subscription: bool,
) -> ResourceSelector:
    if snapshot is None:
        return ResourceSelector(
            target=fallback_target, require_subscription=require_subscription
        )
    return _resource_selector(
        snapshot.service, fallback_target, require_subscription, False
    )


def selector_from_snapshot_deleted(
    deleted: Optional[SnapshotDeleted],
    fallback_target: ServiceRef,
    require_subscription: bool,
) -> ResourceSelector:
    if deleted is None:
        return ResourceSelector(
            target=fallback_target, require_subscription=require_subscription
        )
    return _resource_selector(
        deleted.service, fallback_target, require_subscription, False
    )


def selector_from_route_policy(
    policy: Optional[RoutePolicy],
    fallback_target: ServiceRef,
    require_subscription: bool,
) -> ResourceSelector:
    if policy is None:
        return ResourceSelector(
            target=fallback_target,
            require_subscription=require_subscription,
            require_identity=True,
        )
    return _resource_selector(policy.service, fallback_target, require_subscription, True)


def selector_from_response(
    resp: Optional[ConnectResponse], fallback_target: ServiceRef
) -> ResourceSelector:
    """Build the selector for a pushed response; route policies also require identity."""
    require_subscription = bool(fallback_target.service.strip())
    if resp is not None:
        if resp.service_snapshot is not None:
            return selector_from_snapshot(
                resp.service_snapshot, fallback_target, require_subscription
            )
        if resp.service_snapshot_deleted is not None:
            return selector_from_snapshot_deleted(
                resp.service_snapshot_deleted, fallback_target, require_subscription
            )
        if resp.route_policy is not None:
            return selector_from_route_policy(resp.route_policy, fallback_target, True)
    return ResourceSelector(
        target=fallback_target, require_subscription=require_subscription
    )


def selector_from_subscriber(subscriber: Optional[Subscriber]) -> SubscriberSelector:
    if subscriber is None:
        return SubscriberSelector()
    return SubscriberSelector(identity=subscriber.identity, targets=subscriber.targets)


def evaluate_selector_match(
    subscriber: SubscriberSelector, resource: ResourceSelector
) -> SelectorMatch:
    subscription = MatchPriority.EXACT
    identity = MatchPriority.EXACT
    if resource.require_subscription:
        subscription = subscriber.match_target(resource.target)
    if resource.require_identity:
        identity = match_identity_scope(resource.service, subscriber.identity)
    return SelectorMatch(subscription=subscription, identity=identity)


def matches_selectors(subscriber: SubscriberSelector, resource: ResourceSelector) -> bool:
    return evaluate_selector_match(subscriber, resource).matched()


def match_priority_label(priority: MatchPriority) -> str:
    if priority == MatchPriority.EXACT:
        return "exact"
    if priority == MatchPriority.FALLBACK:
        return "fallback"
    return "none"


def match_target_family(subscribed: ServiceRef, resource: ServiceRef) -> MatchPriority:
    """Same namespace and service; env blank on either side is a fallback."""
    if not subscribed.service.strip() or not resource.service.strip():
        return MatchPriority.NONE
    if subscribed.namespace.strip() != resource.namespace.strip():
        return MatchPriority.NONE
    if subscribed.service.strip() != resource.service.strip():
        return MatchPriority.NONE
    if not subscribed.env.strip() or not resource.env.strip():
        return MatchPriority.FALLBACK
    if subscribed.env.strip() == resource.env.strip():
        return MatchPriority.EXACT
    return MatchPriority.NONE