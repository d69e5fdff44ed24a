"""Fixed, in-character texts the chat shows without asking the model."""

GREETING = (
    "Sou a DominusAI. Envie a imagem base do site ou descreva o bot que deseja criar."
)

ERROR_NOTICE = "Erro crítico no sistema. Tente novamente."

NEW_SESSION_TITLE = "New Session"

TITLE_CHARS = 30
