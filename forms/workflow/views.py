"""
Break/resign workflow buttons.

Every button click is decoded into a WorkflowAction and handed to
handle_workflow_action, which runs the matching lifecycle operation.
"""
import discord
from discord import ui

from utils.exceptions import StateError
from utils.lifecycle_manager import lifecycle_manager
from utils.logging_setup import get_logger
from utils.message_service import MessageService
from utils.workflow_actions import (
    APPROVE_COMEBACK_TEMPLATE,
    BREAK_BUTTON_ID,
    COMEBACK_REQUEST_ID,
    RESIGN_BUTTON_ID,
    ActionKind,
    WorkflowAction,
)
from utils.workflow_messages import break_panel_embed

logger = get_logger(__name__)

PANEL_TITLE = "Breaks & Resignations"


def _require_member(interaction: discord.Interaction) -> discord.Member:
    if interaction.guild is None or not isinstance(interaction.user, discord.Member):
        raise StateError("This button only works inside a server.")
    return interaction.user


async def _run(interaction: discord.Interaction, action: WorkflowAction) -> str:
    if action.kind is ActionKind.BREAK:
        return await lifecycle_manager.take_break(_require_member(interaction))
    if action.kind is ActionKind.RESIGN:
        return await lifecycle_manager.resign(_require_member(interaction))
    if action.kind is ActionKind.COMEBACK_REQUEST:
        return await lifecycle_manager.request_comeback(interaction.user, interaction.client, interaction.message)
    return await lifecycle_manager.approve_comeback(
        _require_member(interaction),
        interaction.guild,
        interaction.channel_id,
        action.user_id,
        interaction.message,
    )


async def handle_workflow_action(interaction: discord.Interaction, action: WorkflowAction) -> None:
    """Run one workflow action for a button click and answer the clicking user"""
    await interaction.response.defer(ephemeral=True, thinking=True)
    result = await MessageService.guard(
        interaction, _run(interaction, action), f"{action.kind.value} by {interaction.user.id}"
    )
    if result is not None:
        await MessageService.reply(interaction, content=result)


class BreakResignView(ui.View):
    """Persistent Break / Resign buttons of the panel message"""

    def __init__(self):
        super().__init__(timeout=None)

    @discord.ui.button(label="Break", style=discord.ButtonStyle.primary, custom_id=BREAK_BUTTON_ID)
    async def break_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        await handle_workflow_action(interaction, WorkflowAction(ActionKind.BREAK))

    @discord.ui.button(label="Resign", style=discord.ButtonStyle.danger, custom_id=RESIGN_BUTTON_ID)
    async def resign_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        await handle_workflow_action(interaction, WorkflowAction(ActionKind.RESIGN))


class ComebackRequestView(ui.View):
    """Persistent Inform Comeback button sent by DM after a resignation"""

    def __init__(self):
        super().__init__(timeout=None)

    @discord.ui.button(label="Inform Comeback", style=discord.ButtonStyle.primary, custom_id=COMEBACK_REQUEST_ID)
    async def comeback_request(self, interaction: discord.Interaction, button: discord.ui.Button):
        await handle_workflow_action(interaction, WorkflowAction(ActionKind.COMEBACK_REQUEST))


class ApproveComebackButton(discord.ui.DynamicItem[discord.ui.Button], template=APPROVE_COMEBACK_TEMPLATE):
    """Approve Comeback button; the resigned user's id lives in the custom_id"""

    def __init__(self, user_id: int):
        self.action = WorkflowAction.approve_comeback(user_id)
        super().__init__(
            discord.ui.Button(
                label="Approve Comeback",
                style=discord.ButtonStyle.success,
                custom_id=self.action.to_custom_id(),
            )
        )

    @classmethod
    async def from_custom_id(cls, interaction: discord.Interaction, item: discord.ui.Button, match):
        return cls(int(match['user_id']))

    async def callback(self, interaction: discord.Interaction):
        await handle_workflow_action(interaction, self.action)


def approve_comeback_view(user_id: int) -> ui.View:
    """View with the Approve Comeback button for one resigned user"""
    view = ui.View(timeout=None)
    view.add_item(ApproveComebackButton(user_id))
    return view


async def send_break_embed(channel: discord.TextChannel) -> discord.Message:
    """
    Post the Breaks & Resignations panel, or refresh the pinned one.

    Raises:
        discord.HTTPException: the panel could not be sent
    """
    try:
        for message in await channel.pins():
            if (message.author == channel.guild.me and message.embeds
                    and message.embeds[0].title == PANEL_TITLE):
                await message.edit(embed=break_panel_embed(channel.guild), view=BreakResignView())
                logger.info("Refreshed pinned break panel %s in #%s", message.id, channel.name)
                return message
    except discord.HTTPException as e:
        logger.warning("Could not check pinned messages in #%s: %s", channel.name, e)

    message = await channel.send(embed=break_panel_embed(channel.guild), view=BreakResignView())
    try:
        await message.pin()
    except discord.HTTPException as e:
        logger.warning("Could not pin break panel in #%s: %s", channel.name, e)
    logger.info("Posted break panel %s in #%s", message.id, channel.name)
    return message
