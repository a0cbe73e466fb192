"""User directory functions."""

from pydantic import Field

from bridge.clients.slack import SlackClient
from bridge.models.llm import FunctionResult
from bridge.tools.base import FunctionArguments, FunctionDefinition


class ListUsersInput(FunctionArguments):
    limit: int = Field(100, ge=1, le=1000, description="Maximum number of users to return")


class UserInput(FunctionArguments):
    user_id: str = Field(..., min_length=1, description="The ID of the user")


class EmailInput(FunctionArguments):
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", description="The email address to look up")


def _summarize_user(user: dict) -> dict:
    profile = user.get("profile", {})
    return {
        "id": user.get("id"),
        "name": user.get("name"),
        "realName": user.get("real_name") or profile.get("real_name"),
        "displayName": profile.get("display_name"),
        "email": profile.get("email"),
        "isBot": user.get("is_bot", False),
        "timezone": user.get("tz"),
    }


def create_user_functions(slack: SlackClient) -> list[FunctionDefinition]:
    """Build user directory functions bound to a Slack client."""

    async def list_users(args: ListUsersInput) -> FunctionResult:
        response = await slack.call("users.list", {"limit": args.limit})
        users = [_summarize_user(user) for user in response.get("members", []) if not user.get("deleted")]
        return {"users": users, "message": f"Found {len(users)} user(s)"}

    async def get_user_info(args: UserInput) -> FunctionResult:
        response = await slack.call("users.info", {"user": args.user_id})
        user = _summarize_user(response.get("user", {}))
        return {"userId": args.user_id, "user": user, "message": f"Found user {user['realName'] or user['name']}"}

    async def lookup_user_by_email(args: EmailInput) -> FunctionResult:
        response = await slack.call("users.lookupByEmail", {"email": args.email})
        user = _summarize_user(response.get("user", {}))
        return {"userId": user["id"], "user": user, "message": f"Found user {user['id']} for {args.email}"}

    return [
        FunctionDefinition("listUsers", "List users in the Slack workspace", ListUsersInput, list_users),
        FunctionDefinition("getUserInfo", "Get information about a Slack user", UserInput, get_user_info),
        FunctionDefinition(
            "lookupUserByEmail", "Look up a Slack user by email address", EmailInput, lookup_user_by_email
        ),
    ]
