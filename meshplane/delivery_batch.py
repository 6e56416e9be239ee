"""Batches of control-plane responses: some written to one stream, some pushed to subscribers."""

from __future__ import annotations

import queue
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from .delivery_explain import BatchExplainSummary, response_kind
from .model import ConnectResponse, ControlSnapshot, RoutePolicy, SnapshotDeleted


@dataclass(frozen=True)
class PlannedDelivery:
    """A response waiting to be pushed onto one subscriber's queue."""

    push_queue: queue.Queue
    response: ConnectResponse


@dataclass
class DeliveryBatch:
    """Responses for the current stream plus pushes to other subscribers."""

    stream_responses: List[ConnectResponse] = field(default_factory=list)
    deliveries: List[PlannedDelivery] = field(default_factory=list)

    def send(self, send: Callable[[ConnectResponse], None]) -> None:
        """Send the stream responses in order; the first failure propagates."""
        for resp in self.stream_responses:
            if resp is not None:
                send(resp)

    def push(self) -> None:
        """Push planned deliveries without blocking; full queues drop the response."""
        for delivery in self.deliveries:
            if delivery.push_queue is None or delivery.response is None:
                continue
            try:
                delivery.push_queue.put_nowait(delivery.response)
            except queue.Full:
                pass

    def stream_count(self) -> int:
        return len(self.stream_responses)

    def delivery_count(self) -> int:
        return len(self.deliveries)

    def explain(self) -> BatchExplainSummary:
        """Count the stream responses by kind."""
        summary = BatchExplainSummary(stream_responses=len(self.stream_responses))
        for resp in self.stream_responses:
            kind = response_kind(resp)
            if kind == "service_snapshot":
                summary.service_snapshots += 1
            elif kind == "service_snapshot_deleted":
                summary.service_snapshot_deleted += 1
            elif kind == "route_policy":
                summary.route_policies += 1
            else:
                summary.unknown += 1
        return summary


def snapshot_response(snapshot: Optional[ControlSnapshot]) -> Optional[ConnectResponse]:
    if snapshot is None:
        return None
    return ConnectResponse(service_snapshot=snapshot)


def route_policy_response(policy: Optional[RoutePolicy]) -> Optional[ConnectResponse]:
    if policy is None:
        return None
    return ConnectResponse(route_policy=policy)


def snapshot_deleted_response(deleted: Optional[SnapshotDeleted]) -> Optional[ConnectResponse]:
    if deleted is None:
        return None
    return ConnectResponse(service_snapshot_deleted=deleted)


class DeliveryBatchBuilder:
    """Collects responses into a delivery batch, ignoring missing ones."""

    def __init__(self) -> None:
        self._batch = DeliveryBatch()

    def add_stream_response(self, resp: Optional[ConnectResponse]) -> None:
        if resp is None:
            return
        self._batch.stream_responses.append(resp)

    def add_stream_snapshot(self, snapshot: Optional[ControlSnapshot]) -> None:
        self.add_stream_response(snapshot_response(snapshot))

    def add_stream_policy(self, policy: Optional[RoutePolicy]) -> None:
        self.add_stream_response(route_policy_response(policy))

    def add_stream_snapshot_deleted(self, deleted: Optional[SnapshotDeleted]) -> None:
        self.add_stream_response(snapshot_deleted_response(deleted))

    def add_stream_snapshots(self, snapshots: Iterable[Optional[ControlSnapshot]]) -> None:
        for snapshot in snapshots or ():
            self.add_stream_snapshot(snapshot)

    def add_stream_policies(self, policies: Iterable[Optional[RoutePolicy]]) -> None:
        for policy in policies or ():
            self.add_stream_policy(policy)

    def add_push_response(
        self, push_queue: Optional[queue.Queue], resp: Optional[ConnectResponse]
    ) -> None:
        if push_queue is None or resp is None:
            return
        self._batch.deliveries.append(PlannedDelivery(push_queue=push_queue, response=resp))

    def build(self) -> DeliveryBatch:
        return self._batch