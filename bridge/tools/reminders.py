"""Reminder and bookmark functions."""

from pydantic import Field

from bridge.clients.slack import SlackClient
from bridge.models.llm import FunctionResult
from bridge.tools.base import FunctionArguments, FunctionDefinition


class AddReminderInput(FunctionArguments):
    text: str = Field(..., min_length=1, description="The reminder text")
    time: str | int = Field(
        ...,
        description="When to remind: a Unix timestamp or natural language like 'in 5 minutes'",
        examples=["in 15 minutes", "tomorrow at 9am", 1735689600],
    )
    user_id: str | None = Field(None, description="The ID of the user to remind (defaults to the token owner)")


class AddBookmarkInput(FunctionArguments):
    channel_id: str = Field(..., min_length=1, description="The ID of the channel")
    title: str = Field(..., min_length=1, description="The title of the bookmark")
    link: str = Field(..., pattern=r"^https?://", description="The URL of the bookmark")
    emoji: str | None = Field(None, description="Optional emoji for the bookmark", examples=[":link:"])


class ListBookmarksInput(FunctionArguments):
    channel_id: str = Field(..., min_length=1, description="The ID of the channel")


def create_reminder_functions(slack: SlackClient) -> list[FunctionDefinition]:
    """Build reminder and bookmark functions bound to a Slack client."""

    async def add_reminder(args: AddReminderInput) -> FunctionResult:
        # reminders.add rejects bot tokens
        response = await slack.call(
            "reminders.add", {"text": args.text, "time": args.time, "user": args.user_id}, use_user_token=True
        )
        reminder = response.get("reminder", {})
        return {
            "userId": args.user_id,
            "reminderId": reminder.get("id"),
            "text": reminder.get("text", args.text),
            "time": reminder.get("time", args.time),
            "message": "Successfully added reminder for user",
        }

    async def add_bookmark(args: AddBookmarkInput) -> FunctionResult:
        response = await slack.call(
            "bookmarks.add",
            {
                "channel_id": args.channel_id,
                "title": args.title,
                "type": "link",
                "link": args.link,
                "emoji": args.emoji,
            },
        )
        bookmark = response.get("bookmark", {})
        return {
            "channelId": args.channel_id,
            "bookmarkId": bookmark.get("id"),
            "message": f"Successfully added bookmark '{args.title}' to channel",
        }

    async def list_bookmarks(args: ListBookmarksInput) -> FunctionResult:
        response = await slack.call("bookmarks.list", {"channel_id": args.channel_id})
        bookmarks = [
            {"id": bookmark.get("id"), "title": bookmark.get("title"), "link": bookmark.get("link")}
            for bookmark in response.get("bookmarks", [])
        ]
        return {
            "channelId": args.channel_id,
            "bookmarks": bookmarks,
            "message": f"Found {len(bookmarks)} bookmark(s) in channel",
        }

    return [
        FunctionDefinition("addReminder", "Add a reminder for a user", AddReminderInput, add_reminder),
        FunctionDefinition("addBookmark", "Add a bookmark to a Slack channel", AddBookmarkInput, add_bookmark),
        FunctionDefinition("listBookmarks", "List bookmarks in a Slack channel", ListBookmarksInput, list_bookmarks),
    ]
