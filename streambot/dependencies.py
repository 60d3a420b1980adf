from fastapi import Request

from streambot.runtime import BotRuntime
from streambot.services.dispatch_service import Dispatcher


def get_runtime(request: Request) -> BotRuntime:
    return request.app.state.runtime


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher
