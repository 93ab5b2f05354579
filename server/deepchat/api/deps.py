from fastapi import Request

from deepchat.config import Settings
from deepchat.db.store import ConversationStore
from deepchat.gateways.fallback import FallbackGateway
from deepchat.gateways.mock import MockGateway
from deepchat.gateways.upstream import CompletionGateway


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> ConversationStore:
    """Stateless wrapper over the process-wide database handle."""
    return ConversationStore(request.app.state.database)


def get_gateway(request: Request) -> CompletionGateway:
    return request.app.state.gateway


def get_mock_gateway(request: Request) -> MockGateway:
    return request.app.state.mock_gateway


def get_fallback_gateway(request: Request) -> FallbackGateway:
    return FallbackGateway(request.app.state.gateway, request.app.state.mock_gateway)
