"""gRPC transaction source for the Aptos transaction stream.

Opens one ``RawData.GetTransactions`` server stream per call to
``stream()`` and normalizes responses into StreamUnit values:

    initial metadata  -> StreamUnit(kind=METADATA)
    each response     -> StreamUnit(kind=DATA, chain_id, transactions)
    call termination  -> StreamUnit(kind=STATUS, code, details)

RPC failures are reported as status units carrying the gRPC code and
details, which is what the session classifies ("Connection dropped",
"invalid wire type"). Failures to even open the channel propagate as
exceptions and go down the supervisor's retry path.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, List, Optional, Tuple

import grpc

from stream_relay.logging import get_component_logger
from stream_relay.protocols import LoggerProtocol
from stream_relay.stream.types import RawEvent, StreamUnit, Transaction, UnitKind

# Keepalive tuned for long-lived server streams behind a load balancer.
CHANNEL_OPTIONS: List[Tuple[str, Any]] = [
    ("grpc.max_receive_message_length", 50 * 1024 * 1024),  # 50MB
    ("grpc.keepalive_time_ms", 60000),
    ("grpc.keepalive_timeout_ms", 20000),
    ("grpc.keepalive_permit_without_calls", True),
    ("grpc.http2.max_pings_without_data", 0),
]


def status_code_value(code: Optional[grpc.StatusCode]) -> int:
    """Numeric value of a grpc.StatusCode (UNKNOWN when missing)."""
    if code is None:
        return grpc.StatusCode.UNKNOWN.value[0]
    return code.value[0]


def transaction_from_proto(txn: Any) -> Transaction:
    """Convert an aptos.transaction.v1.Transaction into a Transaction.

    Only user transactions carry application events.
    """
    events: Tuple[RawEvent, ...] = ()
    if txn.WhichOneof("txn_data") == "user":
        events = tuple(
            RawEvent(type_str=evt.type_str, data=evt.data)
            for evt in txn.user.events
        )
    return Transaction(
        version=int(txn.version),
        timestamp=int(txn.timestamp.seconds),
        events=events,
    )


class GrpcTransactionSource:
    """Streams transactions from an Aptos transaction-stream endpoint.

    Usage:
        source = GrpcTransactionSource(
            "grpc.testnet.aptoslabs.com:443", api_key="aptoslabs_...",
        )
        async for unit in source.stream(starting_version=0):
            ...
    """

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        *,
        secure: bool = True,
        connect_timeout: float = 10.0,
        logger: Optional[LoggerProtocol] = None,
    ):
        """Initialize source.

        Args:
            endpoint: host:port of the stream service
            api_key: Bearer token sent as ``authorization`` metadata
            secure: Use TLS channel credentials
            connect_timeout: Seconds to wait for the channel to become ready
            logger: Logger for DI (uses context logger if not provided)
        """
        self.endpoint = endpoint
        self._api_key = api_key
        self._secure = secure
        self._connect_timeout = connect_timeout
        self._logger = get_component_logger("GrpcTransactionSource", logger)

    def _create_channel(self) -> grpc.aio.Channel:
        if self._secure:
            return grpc.aio.secure_channel(
                self.endpoint,
                grpc.ssl_channel_credentials(),
                options=CHANNEL_OPTIONS,
            )
        return grpc.aio.insecure_channel(self.endpoint, options=CHANNEL_OPTIONS)

    def _call_metadata(self) -> Tuple[Tuple[str, str], ...]:
        if not self._api_key:
            return ()
        return (("authorization", f"Bearer {self._api_key}"),)

    async def stream(self, starting_version: int) -> AsyncIterator[StreamUnit]:
        """Open one server stream starting at ``starting_version``."""
        # Generated stubs ship in the aptos-protos distribution
        from aptos_protos.aptos.indexer.v1 import raw_data_pb2, raw_data_pb2_grpc

        channel = self._create_channel()
        try:
            await asyncio.wait_for(channel.channel_ready(), timeout=self._connect_timeout)
            self._logger.info(
                "grpc_stream_connected",
                endpoint=self.endpoint,
                starting_version=starting_version,
            )

            stub = raw_data_pb2_grpc.RawDataStub(channel)
            request = raw_data_pb2.GetTransactionsRequest(starting_version=starting_version)
            call = stub.GetTransactions(request, metadata=self._call_metadata())

            try:
                initial = await call.initial_metadata()
                yield StreamUnit(
                    kind=UnitKind.METADATA,
                    metadata={str(k): str(v) for k, v in (initial or ())},
                )

                async for response in call:
                    yield StreamUnit.data(
                        int(response.chain_id),
                        (transaction_from_proto(txn) for txn in response.transactions),
                    )

                code = await call.code()
                details = await call.details()
                yield StreamUnit.status(status_code_value(code), details or "")

            except grpc.aio.AioRpcError as e:
                yield StreamUnit.status(status_code_value(e.code()), e.details() or "")
            finally:
                if not call.done():
                    call.cancel()
        finally:
            await channel.close()
            self._logger.debug("grpc_stream_closed", endpoint=self.endpoint)


__all__ = ["GrpcTransactionSource", "transaction_from_proto", "status_code_value", "CHANNEL_OPTIONS"]
