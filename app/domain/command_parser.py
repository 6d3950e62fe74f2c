"""Domain layer: turn raw chat text into a Command."""
from app.domain.commands import Action, Command, ParseError, UnknownCommandError

MISSING_TARGET_MESSAGE = "Please provide a target (username, email, or IP/hostname) for the command."


def is_command(text: str, prefix: str = "!") -> bool:
    return bool(text) and text.strip().startswith(prefix)


def parse(raw_text: str, prefix: str = "!") -> Command:
    """Parse `<prefix><action> <target>`.

    Raises ParseError when the text is not a command or has no target, and
    UnknownCommandError when the action is not one of the seven known verbs.
    Extra tokens after the target are ignored.
    """
    text = (raw_text or "").strip()
    parts = text.split()
    if not parts or not parts[0].startswith(prefix):
        raise ParseError(f"Commands must start with '{prefix}'. Example: {prefix}unlock-user jdoe")

    token = parts[0][len(prefix):]
    if len(parts) < 2:
        raise ParseError(MISSING_TARGET_MESSAGE)

    action = Action.from_token(token)
    if action is None:
        raise UnknownCommandError(
            f"Unknown command: {parts[0].lower()}. Type any message to see available commands."
        )
    return Command(action=action, target=parts[1], raw_text=text)
