from .chat_service import ChatMessageView, ChatService, ChatTurn
from .node_service import GraphSnapshot, NodeService
from .saga import CompensationResult, Saga
from .suggestion_service import (
    EdgeSynthesizer,
    ItemOutcome,
    MetadataMerger,
    NodeResolver,
    ResolvedNode,
    SuggestionReport,
    SuggestionService,
)

__all__ = [
    "ChatMessageView",
    "ChatService",
    "ChatTurn",
    "CompensationResult",
    "EdgeSynthesizer",
    "GraphSnapshot",
    "ItemOutcome",
    "MetadataMerger",
    "NodeResolver",
    "NodeService",
    "ResolvedNode",
    "Saga",
    "SuggestionReport",
    "SuggestionService",
]
