import asyncio

import pytest
import pytest_asyncio
import discord
from unittest.mock import AsyncMock, MagicMock, patch

from forms.workflow.views import ApproveComebackButton, ComebackRequestView
from utils.exceptions import ConfigurationError, PrivilegeError, StateError, TransientExternalFailure
from utils.lifecycle_manager import LifecycleManager
from utils.lifecycle_storage import LifecycleRecord, LifecycleStatus, MemberState, WorkflowSettings, derive_member_state

TRAINEE, STAFF, MANAGER = 100000000000000001, 100000000000000002, 100000000000000003
BREAK_ROLE, RESIGN_ROLE = 100000000000000010, 100000000000000011
PUBLIC_CHANNEL, ADMIN_CHANNEL = 200000000000000001, 200000000000000002


def http_error(cls=discord.Forbidden):
    return cls(MagicMock(status=403, reason="Forbidden"), "Missing Permissions")


@pytest_asyncio.fixture
async def manager(store, guild, hierarchy_ids):
    await store.set_hierarchy(guild.id, hierarchy_ids)
    await store.set_settings(guild.id, WorkflowSettings(BREAK_ROLE, RESIGN_ROLE, PUBLIC_CHANNEL, ADMIN_CHANNEL))
    return LifecycleManager(store)


@pytest.fixture
def client(guild):
    client = MagicMock()
    client.get_guild = MagicMock(side_effect=lambda guild_id: guild if guild_id == guild.id else None)
    return client


@pytest.fixture(autouse=True)
def no_button_edits():
    with patch('utils.lifecycle_manager.MessageService.disable_button', new=AsyncMock(return_value=True)) as mock:
        yield mock


class TestSettings:
    """Workflow settings setup and validation"""

    @pytest.mark.asyncio
    async def test_setup_stores_settings(self, store, guild):
        """resign-and-break-setup persists all four ids"""
        manager = LifecycleManager(store)
        settings = await manager.setup_workflow(
            guild, guild.get_role(BREAK_ROLE), guild.get_role(RESIGN_ROLE),
            guild.get_channel(PUBLIC_CHANNEL), guild.get_channel(ADMIN_CHANNEL),
        )
        assert store.get_settings(guild.id) == settings
        assert store.read_section('settings')[str(guild.id)]['break_resign_channel'] == str(PUBLIC_CHANNEL)

    @pytest.mark.asyncio
    async def test_setup_rejects_unmanageable_role(self, store, guild):
        """Both roles must sit below the bot"""
        manager = LifecycleManager(store)
        with pytest.raises(PrivilegeError):
            await manager.setup_workflow(
                guild, guild.get_role(BREAK_ROLE), guild.get_role(100000000000000100),
                guild.get_channel(PUBLIC_CHANNEL), guild.get_channel(ADMIN_CHANNEL),
            )
        assert store.get_settings(guild.id) is None

    @pytest.mark.asyncio
    async def test_setup_rejects_same_role(self, store, guild):
        """Break and resign roles must differ"""
        manager = LifecycleManager(store)
        with pytest.raises(ConfigurationError):
            await manager.setup_workflow(
                guild, guild.get_role(BREAK_ROLE), guild.get_role(BREAK_ROLE),
                guild.get_channel(PUBLIC_CHANNEL), guild.get_channel(ADMIN_CHANNEL),
            )

    @pytest.mark.asyncio
    async def test_setup_rejects_non_text_channel(self, store, guild):
        """Announcement channels must be text channels"""
        manager = LifecycleManager(store)
        voice = MagicMock(spec=discord.VoiceChannel)
        voice.mention = "<#1>"
        with pytest.raises(ConfigurationError, match="not a text channel"):
            await manager.setup_workflow(
                guild, guild.get_role(BREAK_ROLE), guild.get_role(RESIGN_ROLE),
                voice, guild.get_channel(ADMIN_CHANNEL),
            )

    @pytest.mark.asyncio
    async def test_not_configured(self, store, guild):
        """Missing settings point at the setup command"""
        with pytest.raises(ConfigurationError, match="has not been set up") as exc:
            LifecycleManager(store).get_settings_and_validate(guild)
        assert "/resign-and-break-setup" in exc.value.user_message()

    @pytest.mark.asyncio
    async def test_lists_every_missing_component(self, manager, guild):
        """All vanished roles and channels are reported at once"""
        guild.remove_role(RESIGN_ROLE)
        guild.channels = [c for c in guild.channels if c.id != ADMIN_CHANNEL]
        with pytest.raises(ConfigurationError) as exc:
            manager.get_settings_and_validate(guild)
        assert "Resign Role" in exc.value.message
        assert f"Admin Request Channel (ID: `{ADMIN_CHANNEL}`)" in exc.value.message
        assert "Break Role" not in exc.value.message


class TestBreak:
    """Taking a break"""

    @pytest.mark.asyncio
    async def test_break_adds_role_and_announces(self, manager, guild, member_factory):
        """A ranked member gets the break role, keeps the rank and is announced"""
        alice = member_factory("Staff", name="alice")
        result = await manager.take_break(alice)

        assert alice.role_ids == {STAFF, BREAK_ROLE}
        assert "You are now on break" in result
        assert "Sent ✅" in result
        guild.get_channel(PUBLIC_CHANNEL).send.assert_awaited_once()
        assert manager.store.get_record(alice.id) is None

    @pytest.mark.asyncio
    async def test_break_twice_refused(self, manager, member_factory):
        """A member already on break cannot take another"""
        bob = member_factory("Staff", "On Break", name="bob")
        with pytest.raises(StateError, match="already on break"):
            await manager.take_break(bob)

    @pytest.mark.asyncio
    async def test_break_needs_rank(self, manager, member_factory):
        """Unranked members cannot take a break"""
        carol = member_factory(name="carol")
        with pytest.raises(StateError, match="rank role"):
            await manager.take_break(carol)
        carol.add_roles.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_break_dm_failure_is_reported(self, manager, member_factory):
        """Closed DMs do not fail the break"""
        dave = member_factory("Trainee", name="dave")
        dave.send = AsyncMock(side_effect=http_error())
        result = await manager.take_break(dave)
        assert "Failed ❌" in result
        assert BREAK_ROLE in dave.role_ids


class TestResign:
    """Resignation"""

    @pytest.mark.asyncio
    async def test_resign_saves_roles_and_swaps(self, manager, guild, member_factory):
        """Hierarchy roles are saved, removed and replaced by the resign role"""
        alice = member_factory("Staff", name="alice")
        result = await manager.resign(alice)

        assert alice.role_ids == {RESIGN_ROLE}
        record = manager.store.get_record(alice.id)
        assert record.saved_roles == [STAFF]
        assert record.guild_id == guild.id
        assert record.status is LifecycleStatus.RESIGNED
        assert record.comeback_request_message_id == alice.sent_messages[0].id
        assert "DM Status: Sent ✅" in result

        view = alice.sent_messages[0].view
        assert [item.custom_id for item in view.children] == ["comeback_request"]
        guild.get_channel(PUBLIC_CHANNEL).send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_resign_is_idempotent(self, manager, guild, member_factory):
        """A second resignation is refused and changes nothing"""
        bob = member_factory("Manager", name="bob")
        await manager.resign(bob)
        with pytest.raises(StateError, match="already resigned"):
            await manager.resign(bob)
        assert manager.store.get_record(bob.id).saved_roles == [MANAGER]
        assert guild.get_channel(PUBLIC_CHANNEL).send.await_count == 1

    @pytest.mark.asyncio
    async def test_resign_role_blocks_resign(self, manager, member_factory):
        """Holding the resign role without a record still blocks resign"""
        carol = member_factory("Staff", "Resigned", name="carol")
        with pytest.raises(StateError, match="already resigned"):
            await manager.resign(carol)
        assert manager.store.get_record(carol.id) is None

    @pytest.mark.asyncio
    async def test_resign_needs_rank(self, manager, member_factory):
        """Members without hierarchy roles cannot resign"""
        dave = member_factory(name="dave")
        with pytest.raises(StateError, match="rank role"):
            await manager.resign(dave)
        assert manager.store.get_record(dave.id) is None

    @pytest.mark.asyncio
    async def test_pending_record_in_other_guild(self, manager, member_factory):
        """One pending resignation per user across all guilds"""
        erin = member_factory("Staff", name="erin")
        await manager.store.save_record(erin.id, LifecycleRecord(saved_roles=[1], guild_id=123456789012345678))
        with pytest.raises(StateError, match="another server"):
            await manager.resign(erin)
        assert STAFF in erin.role_ids

    @pytest.mark.asyncio
    async def test_role_swap_failure_rolls_back_record(self, manager, member_factory):
        """If the platform rejects the swap the record is removed again"""
        frank = member_factory("Staff", name="frank")
        frank.remove_roles = AsyncMock(side_effect=http_error())
        with pytest.raises(TransientExternalFailure):
            await manager.resign(frank)
        assert manager.store.get_record(frank.id) is None

    @pytest.mark.asyncio
    async def test_resign_role_failure_gives_ranks_back(self, manager, member_factory):
        """If the resign role cannot be added the removed ranks are restored and the record dropped"""
        kim = member_factory("Staff", name="kim")
        grant = kim.add_roles.side_effect

        async def add_roles(*roles, reason=None):
            if any(role.id == RESIGN_ROLE for role in roles):
                raise http_error()
            await grant(*roles, reason=reason)

        kim.add_roles = AsyncMock(side_effect=add_roles)
        with pytest.raises(TransientExternalFailure):
            await manager.resign(kim)

        assert kim.role_ids == {STAFF}
        assert manager.store.get_record(kim.id) is None
        assert kim.sent_messages == []

    @pytest.mark.asyncio
    async def test_unrecoverable_swap_keeps_record(self, manager, member_factory):
        """When the ranks cannot be given back the record stays and the comeback button is sent"""
        leo = member_factory("Trainee", "Staff", name="leo")
        leo.add_roles = AsyncMock(side_effect=http_error())
        with pytest.raises(TransientExternalFailure, match="roles are saved"):
            await manager.resign(leo)

        assert leo.role_ids == set()
        record = manager.store.get_record(leo.id)
        assert record.saved_roles == [TRAINEE, STAFF]
        dm = leo.sent_messages[0]
        assert record.comeback_request_message_id == dm.id
        assert isinstance(dm.view, ComebackRequestView)

    @pytest.mark.asyncio
    async def test_resign_waits_for_rank_transition(self, manager, guild, member_factory):
        """Resign takes the member lock rank transitions hold, so it snapshots the settled roles"""
        mia = member_factory("Staff", name="mia")
        member_lock = manager.store.locks("member", guild.id, mia.id)

        async with member_lock:
            resigning = asyncio.create_task(manager.resign(mia))
            for _ in range(5):
                await asyncio.sleep(0)
            assert not resigning.done()
            assert manager.store.get_record(mia.id) is None
            # A promotion completes while resign is waiting
            mia.roles = [role for role in mia.roles if role.id != STAFF] + [guild.get_role(MANAGER)]

        await resigning
        assert manager.store.get_record(mia.id).saved_roles == [MANAGER]
        assert mia.role_ids == {RESIGN_ROLE}

    @pytest.mark.asyncio
    async def test_resign_with_closed_dms(self, manager, member_factory):
        """Resignation completes without a DM; no message id is stored"""
        gina = member_factory("Trainee", name="gina")
        gina.send = AsyncMock(side_effect=http_error())
        result = await manager.resign(gina)
        assert "DM Status: Failed ❌" in result
        record = manager.store.get_record(gina.id)
        assert record.comeback_request_message_id is None
        assert RESIGN_ROLE in gina.role_ids

    @pytest.mark.asyncio
    async def test_announcement_failure_is_annotated(self, manager, guild, member_factory):
        """A failed public post does not undo the resignation"""
        hank = member_factory("Trainee", name="hank")
        guild.get_channel(PUBLIC_CHANNEL).send = AsyncMock(side_effect=http_error())
        result = await manager.resign(hank)
        assert "public announcement could not be posted" in result
        assert manager.store.get_record(hank.id) is not None

    @pytest.mark.asyncio
    async def test_member_state_projection(self, manager, member_factory):
        """The stored record decides the member state"""
        ivy = member_factory("Staff", name="ivy")
        assert derive_member_state(manager.store.get_record(ivy.id), True) is MemberState.ACTIVE
        await manager.resign(ivy)
        assert derive_member_state(manager.store.get_record(ivy.id), False) is MemberState.RESIGNED


class TestComeback:
    """Comeback request and approval"""

    @pytest.mark.asyncio
    async def test_full_round_trip_restores_every_saved_role(self, manager, guild, admin, client,
                                                             member_factory, no_button_edits):
        """resign, request, approve restores exactly the saved hierarchy roles"""
        alice = member_factory("Trainee", "Manager", "On Break", name="alice")
        await manager.resign(alice)
        assert alice.role_ids == {BREAK_ROLE, RESIGN_ROLE}

        dm = alice.sent_messages[0]
        result = await manager.request_comeback(alice, client, dm)
        assert "sent to the Administration team" in result
        no_button_edits.assert_awaited_with(dm, "comeback_request", "Comeback Requested")

        admin_channel = guild.get_channel(ADMIN_CHANNEL)
        admin_channel.send.assert_awaited_once()
        approve_view = admin_channel.send.await_args.kwargs['view']
        assert isinstance(approve_view.children[0], ApproveComebackButton)
        assert approve_view.children[0].custom_id == f"approve_comeback_{alice.id}"
        assert manager.store.get_record(alice.id).status is LifecycleStatus.COMEBACK_REQUESTED

        result = await manager.approve_comeback(admin, guild, ADMIN_CHANNEL, alice.id, MagicMock())
        assert alice.role_ids == {TRAINEE, MANAGER, BREAK_ROLE}
        assert manager.store.get_record(alice.id) is None
        assert "Comeback approved" in result
        assert "approved by admin" in alice.sent_messages[-1].content
        # resign + comeback announcements
        assert guild.get_channel(PUBLIC_CHANNEL).send.await_count == 2

    @pytest.mark.asyncio
    async def test_restore_is_one_batch(self, manager, guild, admin, member_factory):
        """Saved roles are restored in a single add call"""
        bob = member_factory("Trainee", "Staff", name="bob")
        await manager.resign(bob)
        bob.add_roles.reset_mock()
        await manager.approve_comeback(admin, guild, ADMIN_CHANNEL, bob.id)
        bob.add_roles.assert_awaited_once()
        assert {role.id for role in bob.add_roles.await_args.args} == {TRAINEE, STAFF}

    @pytest.mark.asyncio
    async def test_repeated_request_is_refused(self, manager, guild, client, member_factory):
        """A second request while one is pending is a no-op"""
        carol = member_factory("Staff", name="carol")
        await manager.resign(carol)
        await manager.request_comeback(carol, client)
        with pytest.raises(StateError, match="already been sent"):
            await manager.request_comeback(carol, client)
        assert guild.get_channel(ADMIN_CHANNEL).send.await_count == 1

    @pytest.mark.asyncio
    async def test_request_without_record(self, manager, client, member_factory):
        """Users without a record cannot request a comeback"""
        dave = member_factory(name="dave")
        with pytest.raises(StateError, match="cannot find your previous role data"):
            await manager.request_comeback(dave, client)

    @pytest.mark.asyncio
    async def test_request_when_bot_left_guild(self, manager, member_factory):
        """The guild of the record must still be reachable"""
        erin = member_factory("Staff", name="erin")
        await manager.resign(erin)
        gone = MagicMock()
        gone.get_guild = MagicMock(return_value=None)
        with pytest.raises(ConfigurationError, match="no longer in the server"):
            await manager.request_comeback(erin, gone)
        assert manager.store.get_record(erin.id).status is LifecycleStatus.RESIGNED

    @pytest.mark.asyncio
    async def test_request_admin_channel_missing(self, manager, guild, client, member_factory):
        """A vanished admin channel is reported with its stored id"""
        frank = member_factory("Staff", name="frank")
        await manager.resign(frank)
        guild.channels = [c for c in guild.channels if c.id != ADMIN_CHANNEL]
        with pytest.raises(ConfigurationError, match=str(ADMIN_CHANNEL)):
            await manager.request_comeback(frank, client)

    @pytest.mark.asyncio
    async def test_approve_requires_administrator(self, manager, guild, member_factory):
        """Only administrators approve comebacks"""
        gina = member_factory("Staff", name="gina")
        await manager.resign(gina)
        helper = member_factory(name="helper")
        with pytest.raises(PrivilegeError, match="administrator"):
            await manager.approve_comeback(helper, guild, ADMIN_CHANNEL, gina.id)
        assert manager.store.get_record(gina.id) is not None

    @pytest.mark.asyncio
    async def test_approve_outside_admin_channel(self, manager, guild, admin, member_factory):
        """Approval only counts in the configured admin channel"""
        hank = member_factory("Staff", name="hank")
        await manager.resign(hank)
        with pytest.raises(PrivilegeError, match="admin request channel"):
            await manager.approve_comeback(admin, guild, PUBLIC_CHANNEL, hank.id)
        assert RESIGN_ROLE in hank.role_ids

    @pytest.mark.asyncio
    async def test_double_approve(self, manager, guild, admin, member_factory):
        """A second approval neither re-adds roles nor announces again"""
        ivy = member_factory("Staff", name="ivy")
        await manager.resign(ivy)
        await manager.approve_comeback(admin, guild, ADMIN_CHANNEL, ivy.id)
        add_calls = ivy.add_roles.await_count
        with pytest.raises(StateError, match="not found"):
            await manager.approve_comeback(admin, guild, ADMIN_CHANNEL, ivy.id)
        assert ivy.add_roles.await_count == add_calls
        assert guild.get_channel(PUBLIC_CHANNEL).send.await_count == 2

    @pytest.mark.asyncio
    async def test_deleted_saved_role_is_skipped(self, manager, guild, admin, member_factory):
        """Roles deleted since the resignation are skipped and reported"""
        jack = member_factory("Trainee", "Staff", name="jack")
        await manager.resign(jack)
        guild.remove_role(STAFF)
        result = await manager.approve_comeback(admin, guild, ADMIN_CHANNEL, jack.id)
        assert jack.role_ids == {TRAINEE}
        assert f"`{STAFF}`" in result

    @pytest.mark.asyncio
    async def test_member_left_guild(self, manager, guild, admin, member_factory):
        """Approval fails when the member is no longer in the guild"""
        kate = member_factory("Staff", name="kate")
        await manager.resign(kate)
        del guild.members[kate.id]
        with pytest.raises(StateError, match="may have left"):
            await manager.approve_comeback(admin, guild, ADMIN_CHANNEL, kate.id)
        assert manager.store.get_record(kate.id) is not None

    @pytest.mark.asyncio
    async def test_restore_failure_keeps_record(self, manager, guild, admin, member_factory):
        """A rejected restore leaves the record for a retry"""
        liam = member_factory("Staff", name="liam")
        await manager.resign(liam)
        liam.add_roles = AsyncMock(side_effect=http_error())
        with pytest.raises(TransientExternalFailure):
            await manager.approve_comeback(admin, guild, ADMIN_CHANNEL, liam.id)
        assert manager.store.get_record(liam.id) is not None
