"""Static guided-interaction prompts."""
from enum import Enum
from typing import Dict, List, Optional

from mcp.types import GetPromptResult, Prompt, PromptMessage, TextContent

from .errors import UnknownPromptError


class PromptName(str, Enum):
    CREATE_NEW_USER = "create-new-user"
    FIND_USER_BY_EMAIL = "find-user-by-email"


CREATE_NEW_USER_TEXT = """Let's create a new user! Please provide the following details:

1. **Full Name** (required)
2. **Email Address** (required, must be unique)
3. **Age** (required, must be a number)

I'll help you add this user to the MongoDB database."""

FIND_USER_BY_EMAIL_TEXT = (
    "Please provide the email address of the user you'd like to find in the database."
)

# name -> (listing description, prompt description, message text)
_PROMPTS = {
    PromptName.CREATE_NEW_USER: (
        "Interactive prompt to create a new user",
        "Create a new user in the database",
        CREATE_NEW_USER_TEXT,
    ),
    PromptName.FIND_USER_BY_EMAIL: (
        "Interactive prompt to find a user by email",
        "Look up a user by email address",
        FIND_USER_BY_EMAIL_TEXT,
    ),
}


class PromptCatalog:
    def list_prompts(self) -> List[Prompt]:
        return [Prompt(name=name.value, description=entry[0]) for name, entry in _PROMPTS.items()]

    def get_prompt(self, name: str, arguments: Optional[Dict[str, str]] = None) -> GetPromptResult:
        """Return the fixed message for a prompt; arguments are ignored."""
        try:
            prompt = PromptName(name)
        except ValueError:
            raise UnknownPromptError(name)

        _, description, text = _PROMPTS[prompt]
        return GetPromptResult(
            description=description,
            messages=[PromptMessage(role="user", content=TextContent(type="text", text=text))],
        )
