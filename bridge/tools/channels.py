"""Channel management functions."""

from pydantic import Field, field_validator

from bridge.clients.slack import SlackClient
from bridge.models.llm import FunctionResult
from bridge.tools.base import FunctionArguments, FunctionDefinition
from bridge.utils.logging import get_logger

logger = get_logger(__name__)

MAX_SEARCH_RESULTS = 20


class CreateChannelInput(FunctionArguments):
    name: str = Field(
        ...,
        min_length=1,
        max_length=80,
        description="The name of the channel to create (lowercase, no spaces, use hyphens)",
        examples=["launch-prep", "team-updates"],
    )
    is_private: bool = Field(False, description="Whether the channel should be private")

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        """Slack channel names are lowercase without spaces or a leading #."""
        name = v.strip().lstrip("#").lower().replace(" ", "-")
        if not name:
            raise ValueError("Channel name cannot be empty")
        return name


class ChannelInput(FunctionArguments):
    channel_id: str = Field(..., min_length=1, description="The ID of the channel")


class InviteToChannelInput(FunctionArguments):
    channel_id: str = Field(..., min_length=1, description="The ID of the channel to invite users to")
    user_ids: list[str] = Field(..., min_length=1, description="Array of user IDs to invite")


class CreateChannelAndInviteInput(CreateChannelInput):
    user_ids: list[str] = Field(..., min_length=1, description="Array of user IDs to invite")


class SearchChannelsInput(FunctionArguments):
    query: str = Field(..., min_length=1, description="The search query (matched against channel names)")
    limit: int = Field(MAX_SEARCH_RESULTS, ge=1, le=100, description="Maximum number of results to return")


def create_channel_functions(slack: SlackClient) -> list[FunctionDefinition]:
    """Build channel functions bound to a Slack client."""

    async def create_channel(args: CreateChannelInput) -> FunctionResult:
        response = await slack.call("conversations.create", {"name": args.name, "is_private": args.is_private})
        channel = response.get("channel", {})
        visibility = "private" if args.is_private else "public"
        return {
            "channelId": channel.get("id"),
            "channelName": channel.get("name", args.name),
            "message": f"Successfully created {visibility} channel #{channel.get('name', args.name)}",
        }

    async def invite_to_channel(args: InviteToChannelInput) -> FunctionResult:
        response = await slack.call("conversations.invite", {"channel": args.channel_id, "users": args.user_ids})
        channel = response.get("channel", {})
        return {
            "channelId": channel.get("id", args.channel_id),
            "channelName": channel.get("name"),
            "invitedUsers": args.user_ids,
            "message": f"Successfully invited {len(args.user_ids)} user(s) to channel",
        }

    async def archive_channel(args: ChannelInput) -> FunctionResult:
        await slack.call("conversations.archive", {"channel": args.channel_id})
        return {"channelId": args.channel_id, "message": "Successfully archived channel"}

    async def unarchive_channel(args: ChannelInput) -> FunctionResult:
        await slack.call("conversations.unarchive", {"channel": args.channel_id}, use_user_token=True)
        return {"channelId": args.channel_id, "message": "Successfully unarchived channel"}

    async def create_channel_and_invite_users(args: CreateChannelAndInviteInput) -> FunctionResult:
        created = await create_channel(args)
        channel_id = created["channelId"]
        await slack.call("conversations.invite", {"channel": channel_id, "users": args.user_ids})
        return {
            "channelId": channel_id,
            "channelName": created["channelName"],
            "invitedUsers": args.user_ids,
            "message": (
                f"Successfully created channel #{created['channelName']} and invited {len(args.user_ids)} user(s)"
            ),
        }

    async def get_channel_members(args: ChannelInput) -> FunctionResult:
        response = await slack.call("conversations.members", {"channel": args.channel_id, "limit": 100})
        members = response.get("members", [])
        return {
            "channelId": args.channel_id,
            "members": members,
            "message": f"Found {len(members)} member(s) in channel",
        }

    async def search_channels(args: SearchChannelsInput) -> FunctionResult:
        query = args.query.strip().lstrip("#").lower()
        channels = []
        cursor = None
        # Page through the channel list until enough matches are found
        while len(channels) < args.limit:
            response = await slack.call(
                "conversations.list",
                {
                    "types": "public_channel,private_channel",
                    "exclude_archived": True,
                    "limit": 200,
                    "cursor": cursor,
                },
            )
            channels.extend(
                {"id": channel.get("id"), "name": channel.get("name"), "isPrivate": channel.get("is_private", False)}
                for channel in response.get("channels", [])
                if query in channel.get("name", "").lower()
            )
            cursor = response.get("response_metadata", {}).get("next_cursor")
            if not cursor:
                break

        channels = channels[: args.limit]
        logger.debug(f"Channel search for {query!r} matched {len(channels)} channel(s)")
        return {"channels": channels, "message": f"Found {len(channels)} channel(s) matching '{args.query}'"}

    return [
        FunctionDefinition("createChannel", "Create a new Slack channel", CreateChannelInput, create_channel),
        FunctionDefinition("inviteToChannel", "Invite users to a Slack channel", InviteToChannelInput, invite_to_channel),
        FunctionDefinition("archiveChannel", "Archive a Slack channel", ChannelInput, archive_channel),
        FunctionDefinition("unarchiveChannel", "Unarchive a Slack channel", ChannelInput, unarchive_channel),
        FunctionDefinition(
            "createChannelAndInviteUsers",
            "Create a new Slack channel and invite users to it",
            CreateChannelAndInviteInput,
            create_channel_and_invite_users,
        ),
        FunctionDefinition("getChannelMembers", "Get members of a Slack channel", ChannelInput, get_channel_members),
        FunctionDefinition("searchChannels", "Search for Slack channels by name", SearchChannelsInput, search_channels),
    ]
