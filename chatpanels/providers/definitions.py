"""Static provider catalog."""
from __future__ import annotations

from chatpanels.providers.types import ModelInfo, ProtocolVariant, ProviderDefinition

LONGCAT = ProviderDefinition(
    id="longcat",
    name="Longcat AI",
    variant=ProtocolVariant.OPENAI_COMPATIBLE,
    default_base_url="https://api.longcat.chat/openai/v1",
    description="High-speed, long-context AI models.",
    models=(
        ModelInfo("LongCat-Flash-Lite", "Flash-Lite", "High-speed / Lightweight / 320K tokens"),
        ModelInfo("LongCat-Flash-Chat", "Flash-Chat", "General purpose / 256K tokens"),
        ModelInfo("LongCat-Flash-Thinking-2601", "Flash-Thinking-2601", "Deep reasoning / Agent / 256K tokens"),
    ),
)

OPENAI = ProviderDefinition(
    id="openai",
    name="OpenAI",
    variant=ProtocolVariant.OPENAI_COMPATIBLE,
    default_base_url="https://api.openai.com/v1",
    description="Industry standard models like GPT-4o.",
    models=(
        ModelInfo("gpt-4o", "GPT-4o", "Standard multimodal model (128k)"),
        ModelInfo("gpt-4o-mini", "GPT-4o Mini", "Efficient small model (128k)"),
        ModelInfo("o3-mini", "o3-mini", "Reasoning special model (128k)"),
        ModelInfo("gpt-5", "GPT-5", "Flagship model (256k)"),
        ModelInfo("gpt-5-mini", "GPT-5 Mini", "Lightweight GPT-5 (128k)"),
        ModelInfo("o4-mini", "o4-mini", "Next-gen reasoning (128k)"),
    ),
)

ANTHROPIC = ProviderDefinition(
    id="anthropic",
    name="Anthropic",
    variant=ProtocolVariant.ANTHROPIC,
    default_base_url="https://api.anthropic.com/v1",
    description="Claude models known for safety and reasoning.",
    models=(
        ModelInfo("claude-sonnet-4-6", "Claude Sonnet 4.6", "Latest balanced model · fast & capable"),
        ModelInfo("claude-opus-4-6", "Claude Opus 4.6", "Flagship · best for complex tasks"),
        ModelInfo("claude-haiku-4-5-20251001", "Claude Haiku 4.5", "Fastest & most affordable"),
        ModelInfo("claude-3-7-sonnet-20250219", "Claude 3.7 Sonnet", "Extended thinking model"),
        ModelInfo("claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet", "Stable high-performance model"),
    ),
)

GEMINI = ProviderDefinition(
    id="gemini",
    name="Google Gemini",
    variant=ProtocolVariant.GEMINI,
    default_base_url="https://generativelanguage.googleapis.com/v1beta",
    description="Google's multimodal AI models.",
    models=(
        ModelInfo("gemini-2.5-pro", "Gemini 2.5 Pro", "Flagship · deep reasoning & coding"),
        ModelInfo("gemini-2.5-flash", "Gemini 2.5 Flash", "Fast · low latency with reasoning"),
        ModelInfo("gemini-2.5-flash-lite", "Gemini 2.5 Flash-Lite", "Fastest & lowest cost"),
        ModelInfo("gemini-3-pro", "Gemini 3 Pro (Preview)", "Advanced multimodal reasoning"),
        ModelInfo("gemini-3-flash", "Gemini 3 Flash (Preview)", "Next-gen at lower cost"),
    ),
)

DEEPSEEK = ProviderDefinition(
    id="deepseek",
    name="DeepSeek",
    variant=ProtocolVariant.OPENAI_COMPATIBLE,
    default_base_url="https://api.deepseek.com",
    description="Highly capable open-weight models.",
    models=(
        ModelInfo("deepseek-chat", "DeepSeek Chat", "General purpose (128k)"),
        ModelInfo("deepseek-reasoner", "DeepSeek Reasoner", "R1-based reasoning (128k)"),
        ModelInfo("DeepSeek-V3.2", "DeepSeek V3.2", "Latest flagship"),
        ModelInfo("deepseek-coder", "DeepSeek Coder", "Coding specialist"),
    ),
)

OPENROUTER = ProviderDefinition(
    id="openrouter",
    name="OpenRouter",
    variant=ProtocolVariant.OPENAI_COMPATIBLE,
    default_base_url="https://openrouter.ai/api/v1",
    description="Unified API for 400+ models from all providers.",
    models=(
        ModelInfo("anthropic/claude-sonnet-4-6", "Claude Sonnet 4.6", "Latest Anthropic model via OpenRouter"),
        ModelInfo("google/gemini-2.5-pro", "Gemini 2.5 Pro", "Latest Google model via OpenRouter"),
        ModelInfo("google/gemini-2.5-flash", "Gemini 2.5 Flash", "Fast Gemini via OpenRouter"),
        ModelInfo("openai/gpt-4o", "GPT-4o", "OpenAI flagship via OpenRouter"),
        ModelInfo("openai/o3-mini", "o3-mini", "OpenAI reasoning model via OpenRouter"),
        ModelInfo("deepseek/deepseek-r1", "DeepSeek R1", "Open-source reasoning model"),
        ModelInfo("meta-llama/llama-3.3-70b-instruct", "Llama 3.3 70B", "Meta open-source model"),
        ModelInfo("mistralai/mistral-large", "Mistral Large", "Mistral flagship model"),
    ),
)

DIFY = ProviderDefinition(
    id="dify",
    name="Dify",
    variant=ProtocolVariant.WORKFLOW,
    default_base_url="https://api.dify.ai/v1",
    description="Dify LLMOps platform",
    models=(ModelInfo("dify-default", "Dify App", "Dify default application model"),),
)

ALL_PROVIDERS: tuple[ProviderDefinition, ...] = (
    LONGCAT,
    OPENAI,
    ANTHROPIC,
    GEMINI,
    DEEPSEEK,
    OPENROUTER,
    DIFY,
)
