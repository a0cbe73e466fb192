"""Messaging, search and reaction functions."""

from typing import Literal

from pydantic import Field, field_validator

from bridge.clients.slack import SlackClient
from bridge.errors import SlackAPIError
from bridge.models.llm import FunctionResult
from bridge.services.formatter import to_slack_markdown
from bridge.tools.base import FunctionArguments, FunctionDefinition
from bridge.utils.logging import get_logger

logger = get_logger(__name__)


class SendMessageInput(FunctionArguments):
    channel_id: str = Field(..., min_length=1, description="The ID of the channel to send the message to")
    text: str = Field(..., min_length=1, description="The message text (Slack mrkdwn)")
    thread_ts: str | None = Field(None, description="Optional thread timestamp to reply in a thread")


class SendDirectMessageInput(FunctionArguments):
    user_id: str = Field(..., min_length=1, description="The ID of the user to message")
    text: str = Field(..., min_length=1, description="The message text")


class SendToChannelsInput(FunctionArguments):
    channel_ids: list[str] = Field(..., min_length=1, description="Array of channel IDs")
    text: str = Field(..., min_length=1, description="The message text")


class SendEphemeralInput(FunctionArguments):
    channel_id: str = Field(..., min_length=1, description="The ID of the channel")
    user_id: str = Field(..., min_length=1, description="The ID of the user who will see the message")
    text: str = Field(..., min_length=1, description="The message text")


class ScheduleMessageInput(FunctionArguments):
    channel_id: str = Field(..., min_length=1, description="The ID of the channel")
    text: str = Field(..., min_length=1, description="The message text")
    post_at: int = Field(..., gt=0, description="Unix timestamp for when to send the message")


class MessageRefInput(FunctionArguments):
    channel_id: str = Field(..., min_length=1, description="The ID of the channel")
    message_ts: str = Field(..., min_length=1, description="The timestamp of the message")


class SearchMessagesInput(FunctionArguments):
    query: str = Field(..., min_length=1, description="The search query")
    count: int = Field(20, ge=1, le=100, description="Maximum number of results to return")
    sort: Literal["score", "timestamp"] = Field("score", description="Sort order (score or timestamp)")
    sort_dir: Literal["asc", "desc"] = Field("desc", description="Sort direction (asc or desc)")


class AddReactionInput(MessageRefInput):
    reaction: str = Field(..., min_length=1, description="The name of the emoji, without colons", examples=["tada"])

    @field_validator("reaction")
    @classmethod
    def strip_colons(cls, v: str) -> str:
        return v.strip().strip(":")


def create_message_functions(slack: SlackClient) -> list[FunctionDefinition]:
    """Build messaging functions bound to a Slack client."""

    async def post_message(channel_id: str, text: str, thread_ts: str | None = None) -> dict:
        return await slack.call(
            "chat.postMessage",
            {"channel": channel_id, "text": to_slack_markdown(text), "thread_ts": thread_ts, "mrkdwn": True},
        )

    async def send_message(args: SendMessageInput) -> FunctionResult:
        response = await post_message(args.channel_id, args.text, args.thread_ts)
        return {
            "channelId": response.get("channel", args.channel_id),
            "messageTs": response.get("ts"),
            "message": "Successfully sent message to channel",
        }

    async def send_direct_message(args: SendDirectMessageInput) -> FunctionResult:
        opened = await slack.call("conversations.open", {"users": args.user_id})
        channel_id = opened.get("channel", {}).get("id")
        response = await post_message(channel_id, args.text)
        return {
            "userId": args.user_id,
            "channelId": channel_id,
            "messageTs": response.get("ts"),
            "message": "Successfully sent direct message to user",
        }

    async def send_message_to_multiple_channels(args: SendToChannelsInput) -> FunctionResult:
        sent = []
        failures = []
        for channel_id in args.channel_ids:
            try:
                response = await post_message(channel_id, args.text)
            except SlackAPIError as e:
                failures.append({"channelId": channel_id, "error": str(e)})
            else:
                sent.append({"channelId": channel_id, "messageTs": response.get("ts")})

        message = f"Successfully sent message to {len(sent)} channel(s)"
        if failures:
            message += f", failed for {len(failures)} channel(s)"
        result: FunctionResult = {
            "success": not failures,
            "successCount": len(sent),
            "failureCount": len(failures),
            "results": sent,
            "failures": failures,
            "message": message,
        }
        if failures:
            result["error"] = "; ".join(f"{failure['channelId']}: {failure['error']}" for failure in failures)
        return result

    async def send_ephemeral_message(args: SendEphemeralInput) -> FunctionResult:
        response = await slack.call(
            "chat.postEphemeral",
            {"channel": args.channel_id, "user": args.user_id, "text": to_slack_markdown(args.text)},
        )
        return {
            "channelId": args.channel_id,
            "userId": args.user_id,
            "messageTs": response.get("message_ts"),
            "message": "Successfully sent ephemeral message to user",
        }

    async def schedule_message(args: ScheduleMessageInput) -> FunctionResult:
        response = await slack.call(
            "chat.scheduleMessage",
            {"channel": args.channel_id, "text": to_slack_markdown(args.text), "post_at": args.post_at},
        )
        return {
            "channelId": args.channel_id,
            "scheduledMessageId": response.get("scheduled_message_id"),
            "postAt": response.get("post_at", args.post_at),
            "message": "Successfully scheduled message",
        }

    async def get_message_permalink(args: MessageRefInput) -> FunctionResult:
        response = await slack.call("chat.getPermalink", {"channel": args.channel_id, "message_ts": args.message_ts})
        permalink = response.get("permalink")
        return {"channelId": args.channel_id, "permalink": permalink, "message": f"Message permalink: {permalink}"}

    async def search_messages(args: SearchMessagesInput) -> FunctionResult:
        # search.messages only accepts user tokens
        response = await slack.call(
            "search.messages",
            {"query": args.query, "count": args.count, "sort": args.sort, "sort_dir": args.sort_dir},
            use_user_token=True,
        )
        matches = [
            {
                "channelId": match.get("channel", {}).get("id"),
                "channelName": match.get("channel", {}).get("name"),
                "user": match.get("user") or match.get("username"),
                "text": match.get("text"),
                "ts": match.get("ts"),
                "permalink": match.get("permalink"),
            }
            for match in response.get("messages", {}).get("matches", [])
        ]
        return {"matches": matches, "message": f"Found {len(matches)} message(s) matching '{args.query}'"}

    async def add_reaction(args: AddReactionInput) -> FunctionResult:
        await slack.call(
            "reactions.add", {"channel": args.channel_id, "timestamp": args.message_ts, "name": args.reaction}
        )
        return {
            "channelId": args.channel_id,
            "messageTs": args.message_ts,
            "reaction": args.reaction,
            "message": f"Successfully added reaction {args.reaction} to message",
        }

    return [
        FunctionDefinition("sendMessage", "Send a message to a Slack channel", SendMessageInput, send_message),
        FunctionDefinition(
            "sendDirectMessage", "Send a direct message to a Slack user", SendDirectMessageInput, send_direct_message
        ),
        FunctionDefinition(
            "sendMessageToMultipleChannels",
            "Send the same message to multiple Slack channels",
            SendToChannelsInput,
            send_message_to_multiple_channels,
        ),
        FunctionDefinition(
            "sendEphemeralMessage",
            "Send an ephemeral message (only visible to a specific user)",
            SendEphemeralInput,
            send_ephemeral_message,
        ),
        FunctionDefinition(
            "scheduleMessage", "Schedule a message for future delivery", ScheduleMessageInput, schedule_message
        ),
        FunctionDefinition(
            "getMessagePermalink", "Get a permalink to a Slack message", MessageRefInput, get_message_permalink
        ),
        FunctionDefinition("searchMessages", "Search for messages in Slack", SearchMessagesInput, search_messages),
        FunctionDefinition("addReaction", "Add an emoji reaction to a message", AddReactionInput, add_reaction),
    ]
