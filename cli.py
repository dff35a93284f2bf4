"""CLI: chat with the intake agent in a terminal. For the API, use: python run_api.py."""
import asyncio

from dotenv import load_dotenv

load_dotenv()

from aura_intake.core.events import StreamError, TextDelta, ToolCallBatch
from aura_intake.core.session import ChatSession, ChatSessionError


async def main() -> None:
    session = ChatSession()
    print(session.timeline.snapshot()[0].text)
    if not session.initialize():
        print("Chat model unavailable (check NVIDIA_API_KEY).")
        return
    while True:
        try:
            text = input("\n> ")
        except (EOFError, KeyboardInterrupt):
            break
        if text.strip().lower() in ("exit", "quit"):
            break
        try:
            events = session.send(text)
        except ChatSessionError as e:
            print(f"({e})")
            continue
        already_saved = session.lead_submitted
        async for event in events:
            if isinstance(event, TextDelta):
                print(event.text, end="", flush=True)
            elif isinstance(event, ToolCallBatch):
                print(f"\n[{', '.join(c.name for c in event.calls)}]")
            elif isinstance(event, StreamError):
                print(f"\n{event.text}")
        if session.lead_submitted and not already_saved:
            print("\n(lead saved)")


if __name__ == "__main__":
    asyncio.run(main())
