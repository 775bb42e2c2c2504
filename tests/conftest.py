# Test configuration
import os
import sys
import tempfile

# Add the project root to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Test environment variables
os.environ['TESTING'] = 'true'
os.environ['DISCORD_TOKEN'] = 'test_token_for_testing'
# Keep the module-level data store away from the working tree
os.environ['BOT_DATA_FILE'] = os.path.join(tempfile.mkdtemp(prefix='bot_test_'), 'data.json')

import pytest
import discord
from unittest.mock import MagicMock, AsyncMock

from utils.data_store import DataStore

# Configure asyncio for pytest
pytest_plugins = ('pytest_asyncio',)

GUILD_ID = 900000000000000001
OWNER_ID = 900000000000000002
BOT_ID = 900000000000000003


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


class FakeRole:
    """Just enough of discord.Role: id, name, ordering by position, assignability"""

    def __init__(self, role_id, name, position, assignable=True):
        self.id = role_id
        self.name = name
        self.position = position
        self.mention = f"<@&{role_id}>"
        self.assignable = assignable

    def is_assignable(self):
        return self.assignable

    def __eq__(self, other):
        return isinstance(other, FakeRole) and other.id == self.id

    def __hash__(self):
        return hash(self.id)

    def __lt__(self, other):
        return self.position < other.position

    def __le__(self, other):
        return self.position <= other.position

    def __str__(self):
        return self.name

    def __repr__(self):
        return f"<FakeRole {self.name} id={self.id} pos={self.position}>"


class FakeMember:
    """Member whose add_roles/remove_roles really change ``roles``, unlike a bare mock"""

    def __init__(self, member_id, guild, roles=(), name="member", administrator=False):
        self.id = member_id
        self.guild = guild
        self.name = name
        self.mention = f"<@{member_id}>"
        self.roles = list(roles)
        self.guild_permissions = MagicMock(administrator=administrator)
        self.add_roles = AsyncMock(side_effect=self._add_roles)
        self.remove_roles = AsyncMock(side_effect=self._remove_roles)
        self.sent_messages = []
        self.send = AsyncMock(side_effect=self._send)

    @property
    def top_role(self):
        if not self.roles:
            return self.guild.default_role
        return max(self.roles, key=lambda role: role.position)

    @property
    def role_ids(self):
        return {role.id for role in self.roles}

    async def _add_roles(self, *roles, reason=None):
        for role in roles:
            if role.id not in self.role_ids:
                self.roles.append(role)

    async def _remove_roles(self, *roles, reason=None):
        removed = {role.id for role in roles}
        self.roles = [role for role in self.roles if role.id not in removed]

    async def _send(self, content=None, embed=None, view=None):
        message = MagicMock()
        message.id = 800000000000000000 + len(self.sent_messages)
        message.content = content
        message.view = view
        self.sent_messages.append(message)
        return message

    def __str__(self):
        return self.name


class FakeGuild:
    """Guild with a role list, text channels and members"""

    def __init__(self, guild_id=GUILD_ID, name="Test Guild"):
        self.id = guild_id
        self.name = name
        self.owner_id = OWNER_ID
        self.icon = None
        self.default_role = FakeRole(guild_id, "@everyone", 0)
        self.roles = [self.default_role]
        self.channels = []
        self.members = {}
        self.me = None
        self.fetch_member = AsyncMock(
            side_effect=discord.NotFound(MagicMock(status=404, reason="Not Found"), "Unknown Member")
        )

    def add_role(self, role_id, name, position, assignable=True):
        role = FakeRole(role_id, name, position, assignable)
        self.roles.append(role)
        return role

    def remove_role(self, role_id):
        self.roles = [role for role in self.roles if role.id != role_id]

    def add_channel(self, channel_id, name):
        channel = MagicMock(spec=discord.TextChannel)
        channel.id = channel_id
        channel.name = name
        channel.mention = f"<#{channel_id}>"
        channel.guild = self
        channel.send = AsyncMock()
        channel.set_permissions = AsyncMock()
        self.channels.append(channel)
        return channel

    def add_member(self, member_id, roles=(), name="member", administrator=False):
        member = FakeMember(member_id, self, roles, name=name, administrator=administrator)
        self.members[member_id] = member
        return member

    def get_role(self, role_id):
        return next((role for role in self.roles if role.id == role_id), None)

    def get_channel(self, channel_id):
        return next((channel for channel in self.channels if channel.id == channel_id), None)

    def get_member(self, member_id):
        return self.members.get(member_id)


@pytest.fixture
def guild():
    """Guild with a three-rank hierarchy below the bot, plus break/resign roles and channels"""
    guild = FakeGuild()
    guild.add_role(100000000000000001, "Trainee", 1)
    guild.add_role(100000000000000002, "Staff", 2)
    guild.add_role(100000000000000003, "Manager", 3)
    guild.add_role(100000000000000010, "On Break", 4)
    guild.add_role(100000000000000011, "Resigned", 5)
    bot_role = guild.add_role(100000000000000099, "Bot", 50, assignable=False)
    guild.add_role(100000000000000100, "Owner Role", 60, assignable=False)
    guild.me = guild.add_member(BOT_ID, roles=[bot_role], name="bot")
    guild.add_channel(200000000000000001, "announcements")
    guild.add_channel(200000000000000002, "staff-admin")
    return guild


@pytest.fixture
def hierarchy_ids():
    return [100000000000000001, 100000000000000002, 100000000000000003]


@pytest.fixture
def admin(guild):
    return guild.add_member(300000000000000001, name="admin", administrator=True)


@pytest.fixture
def member_factory(guild):
    """Create members of the test guild holding roles by name"""
    counter = iter(range(400000000000000001, 400000000000001000))

    def make(*role_names, name="member"):
        roles = [role for role in guild.roles if role.name in role_names]
        return guild.add_member(next(counter), roles=roles, name=name)

    return make


@pytest.fixture
def store(tmp_path):
    """DataStore rooted in a temporary directory"""
    return DataStore(str(tmp_path / "data.json"))
