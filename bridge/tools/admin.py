"""Enterprise Grid admin functions.

All admin methods require an admin-scoped user token.
"""

from pydantic import Field

from bridge.clients.slack import SlackClient
from bridge.models.llm import FunctionResult
from bridge.tools.base import FunctionArguments, FunctionDefinition


class AdminInviteToChannelInput(FunctionArguments):
    channel_id: str = Field(..., min_length=1, description="The ID of the channel")
    user_ids: list[str] = Field(..., min_length=1, description="Array of user IDs to invite")


class InviteUserToWorkspaceInput(FunctionArguments):
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", description="The email address of the user to invite")
    channel_ids: list[str] = Field(default_factory=list, description="Array of channel IDs to invite the user to")
    team_id: str | None = Field(None, description="The ID of the team (for Enterprise Grid)")
    custom_message: str | None = Field(None, description="Custom invitation message")


class AssignUserInput(FunctionArguments):
    team_id: str = Field(..., min_length=1, description="The ID of the team to assign the user to")
    user_id: str = Field(..., min_length=1, description="The ID of the user to assign")


class AdminChannelInput(FunctionArguments):
    channel_id: str = Field(..., min_length=1, description="The ID of the channel to archive")


def create_admin_functions(slack: SlackClient) -> list[FunctionDefinition]:
    """Build admin functions bound to a Slack client."""

    async def admin_invite_users_to_channel(args: AdminInviteToChannelInput) -> FunctionResult:
        await slack.call(
            "admin.conversations.invite",
            {"channel_id": args.channel_id, "user_ids": args.user_ids},
            use_user_token=True,
        )
        return {
            "channelId": args.channel_id,
            "invitedUsers": args.user_ids,
            "message": f"Successfully invited {len(args.user_ids)} user(s) to channel",
        }

    async def invite_user_to_workspace(args: InviteUserToWorkspaceInput) -> FunctionResult:
        await slack.call(
            "admin.users.invite",
            {
                "email": args.email,
                "channel_ids": args.channel_ids or None,
                "team_id": args.team_id,
                "custom_message": args.custom_message,
            },
            use_user_token=True,
        )
        return {"email": args.email, "message": f"Successfully invited {args.email} to the workspace"}

    async def assign_user_to_workspace(args: AssignUserInput) -> FunctionResult:
        await slack.call("admin.users.assign", {"team_id": args.team_id, "user_id": args.user_id}, use_user_token=True)
        return {"userId": args.user_id, "teamId": args.team_id, "message": "Successfully assigned user to workspace"}

    async def admin_archive_channel(args: AdminChannelInput) -> FunctionResult:
        await slack.call("admin.conversations.archive", {"channel_id": args.channel_id}, use_user_token=True)
        return {"channelId": args.channel_id, "message": "Successfully archived channel"}

    return [
        FunctionDefinition(
            "adminInviteUsersToChannel",
            "Invite users to a Slack channel (admin level)",
            AdminInviteToChannelInput,
            admin_invite_users_to_channel,
        ),
        FunctionDefinition(
            "inviteUserToWorkspace",
            "Invite a user to the Slack workspace",
            InviteUserToWorkspaceInput,
            invite_user_to_workspace,
        ),
        FunctionDefinition(
            "assignUserToWorkspace", "Assign a user to a Slack workspace", AssignUserInput, assign_user_to_workspace
        ),
        FunctionDefinition(
            "adminArchiveChannel", "Archive a Slack channel (admin level)", AdminChannelInput, admin_archive_channel
        ),
    ]
