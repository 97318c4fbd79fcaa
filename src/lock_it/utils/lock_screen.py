import pyfiglet
from rich.align import Align
from rich.console import Console, Group
from rich.text import Text


def render(
    console: Console,
    until: str | None = None,
    attempt_count: int = 0,
    message: str | None = None,
):
    """
    Clears the terminal and draws the full-screen lock banner.
    """
    font = pyfiglet.Figlet(font="block")
    art_text = font.renderText("FOCUS")

    lines = ["\nThis machine is locked for focus time."]
    if until:
        lines.append(f"Lock window ends at {until}.")
    lines.append("\nEnter the password or a TOTP code to unlock.")
    if attempt_count:
        lines.append(f"Failed attempts: {attempt_count}")

    subtext = Text("\n".join(lines), justify="center", style="bold yellow")
    parts = [Text(art_text, style="bold green", justify="center"), subtext]
    if message:
        parts.append(Text(f"\n{message}", justify="center", style="bold red"))

    console.clear()
    console.print(Align.center(Group(*parts), vertical="middle"))
