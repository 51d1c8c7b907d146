"""
HTTP side of the bridge.

External callers POST raw messages to '/message'; each body is published
unchanged on the broker's input topic and acknowledged immediately. The
acknowledgement confirms acceptance, not processing.
"""

import json

from fastapi import FastAPI, Request, Response
from fastapi.concurrency import run_in_threadpool
from loguru import logger
from starlette.requests import ClientDisconnect

from ..core.codec import to_dict
from ..core.errors import RequestBodyError
from ..core.message import Message
from ..routing.interfaces import Publisher


async def read_body(request: Request) -> bytes:
    try:
        return await request.body()
    except ClientDisconnect as e:
        raise RequestBodyError("Client disconnected before sending the body") from e
    except Exception as e:
        raise RequestBodyError(f"Could not read request body: {e}") from e


def _ack_response(module_name: str, status_code: int) -> Response:
    ack = Message(module=module_name)
    return Response(
        content=json.dumps(to_dict(ack), indent=4),
        status_code=status_code,
        media_type="application/json",
    )


def create_app(
    publisher: Publisher, module_name: str, input_topic: str, state=None
) -> FastAPI:
    """
    Builds the inbound HTTP application.

    Args:
        publisher: Broker connection the bodies are published on.
        module_name: Module identifier set on every acknowledgement.
        input_topic: Broker topic receiving the published bodies.
        state: Optional callable returning the broker connection state,
               reported by '/health'.
    """
    app = FastAPI(
        title="gowon MQTT bridge",
        description="Publishes HTTP submitted messages on the gowon broker",
    )

    @app.post("/message")
    async def post_message(request: Request) -> Response:
        try:
            body = await read_body(request)
        except RequestBodyError as e:
            logger.warning(str(e))
            return _ack_response(module_name, 400)

        logger.debug(f"HTTP < Publishing {len(body)} bytes to topic '{input_topic}'")
        await run_in_threadpool(
            publisher.publish, input_topic, body, qos=0, retain=False
        )
        return _ack_response(module_name, 200)

    @app.get("/health")
    def health() -> dict[str, str]:
        broker_state = str(state().value) if state else "unknown"
        return {"status": "healthy", "broker": broker_state}

    return app
