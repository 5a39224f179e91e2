from wabot.services.ai_service import (
    AIOptions,
    AIProviderError,
    AIResponder,
    AIResponse,
    build_ai_responder,
)
from wabot.services.conversation_service import ConversationStore
from wabot.services.inbound_service import (
    InboundMessage,
    InboundOutcome,
    InboundPipeline,
    handle_inbound,
)
from wabot.services.knowledge_service import KnowledgeMatch, KnowledgeMatcher
from wabot.services.state_machine import (
    ConversationStatus,
    InvalidTransitionError,
    can_transition,
    escalate,
    reopen,
    resolve,
    transition,
)
from wabot.services.whatsapp_service import (
    MetaTransport,
    SendResult,
    TransportError,
    TwilioTransport,
    WhatsAppTransport,
)
