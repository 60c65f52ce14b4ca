"""
Terminal chat client: talks to a running chat server through the same
session controller the web widget uses.

Usage:
    python server.py          # in one terminal
    python main.py            # in another

Type a question and press Enter. Type "quit" to leave.
"""

import sys
import time

from app_config import CHAT_API_BASE_URL
from message_renderer import find_links
from models import Turn
from session_controller import ChatSessionController, HttpChatTransport


def print_turn(turn: Turn):
    """Print a bot turn with its links listed underneath."""
    print(f"\n🤖  {turn.content}")
    for link in find_links(turn.content):
        marker = "🔗" if link.kind == "external" else "📄"
        print(f"   {marker} {link.target}")


def run(base_url: str = CHAT_API_BASE_URL):
    printed = set()

    def on_change(transcript):
        # Only the newest bot turn is new output; the user already sees their own input
        latest = transcript[-1]
        if latest.is_bot and latest.id not in printed:
            printed.add(latest.id)
            print_turn(latest)

    controller = ChatSessionController(HttpChatTransport(base_url), on_change=on_change)
    session = controller.mount()

    print("=" * 60)
    print("  EcodataBot — Ask me about our services and impact")
    print(f"  Server:  {base_url}")
    print(f"  Session: {session.session_id}")
    print("=" * 60)

    # Give the welcome turn a moment to appear before the first prompt
    time.sleep(controller.welcome_delay + 0.1)

    try:
        while True:
            try:
                text = input("\n💬  ")
            except EOFError:
                break
            if text.strip().lower() in {"quit", "exit"}:
                break
            controller.set_input(text)
            if controller.can_submit:
                controller.submit()
    except KeyboardInterrupt:
        pass
    finally:
        controller.unmount()
        print("\n👋  Bye!")


if __name__ == "__main__":
    run(sys.argv[1] if len(sys.argv) > 1 else CHAT_API_BASE_URL)
