"""File upload function.

Uses the external upload flow: reserve an upload URL, send the bytes, then
complete the upload and share it to the channel.
"""

from pydantic import Field

from bridge.clients.slack import SlackClient
from bridge.models.llm import FunctionResult
from bridge.tools.base import FunctionArguments, FunctionDefinition


class UploadFileInput(FunctionArguments):
    channel_id: str = Field(..., min_length=1, description="The ID of the channel to share the file in")
    file_content: str = Field(..., description="The file content as text")
    filename: str = Field(..., min_length=1, description="The filename, including extension", examples=["notes.md"])
    initial_comment: str | None = Field(None, description="Optional comment posted with the file")


def create_file_functions(slack: SlackClient) -> list[FunctionDefinition]:
    """Build file functions bound to a Slack client."""

    async def upload_file(args: UploadFileInput) -> FunctionResult:
        content = args.file_content.encode("utf-8")
        reserved = await slack.call("files.getUploadURLExternal", {"filename": args.filename, "length": len(content)})
        await slack.upload_content(reserved["upload_url"], content, args.filename)

        completed = await slack.call(
            "files.completeUploadExternal",
            {
                "files": [{"id": reserved["file_id"], "title": args.filename}],
                "channel_id": args.channel_id,
                "initial_comment": args.initial_comment,
            },
        )
        uploaded = (completed.get("files") or [{}])[0]
        return {
            "channelId": args.channel_id,
            "fileId": uploaded.get("id", reserved["file_id"]),
            "fileName": uploaded.get("name", args.filename),
            "message": f"Successfully uploaded file {args.filename} to channel",
        }

    return [FunctionDefinition("uploadFile", "Upload a text file to a Slack channel", UploadFileInput, upload_file)]
