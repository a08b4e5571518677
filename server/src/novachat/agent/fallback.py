"""Canned replies used when no upstream model is configured."""


def fallback_respond(message: str) -> str:
    msg = (message or "").strip().lower()
    if not msg:
        return "Hi — I'm Novachat. Say something and I'll reply."
    if "hello" in msg or "hi" in msg:
        return "Hello! I'm Novachat — how can I help today?"
    if "help" in msg:
        return (
            "You can ask me to summarize text, draft messages, or just chat. "
            "If you set OPENAI_API_KEY I can do much more."
        )
    if msg.endswith("?"):
        return "That's a great question — here's a friendly thought: " + message
    return f"Novachat echo: {message}"
