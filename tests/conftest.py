"""Shared test fixtures."""

import pytest

from cardmatch import (
    CardSet,
    Color,
    ExistingCard,
    Player,
    PlayerAlias,
    PlayerTeam,
    ProvisionalCard,
    Series,
    Team,
)
from cardmatch.catalog import InMemoryCatalog
from cardmatch.index import ReferenceIndex, group_players, index_aliases


TEAMS = [
    Team(1, 'Los Angeles Angels', 'Los Angeles', 'Angels', 'LAA', 1),
    Team(2, 'New York Yankees', 'New York', 'Yankees', 'NYY', 1),
    Team(3, 'Cleveland Guardians', 'Cleveland', 'Guardians', 'CLE', 1),
    Team(4, 'Seattle Mariners', 'Seattle', 'Mariners', 'SEA', 1),
    Team(5, 'Los Angeles Dodgers', 'Los Angeles', 'Dodgers', 'LAD', 1),
    Team(6, 'Nevada Wolf Pack', 'Nevada', 'Wolf Pack', 'NEV', 5),
    Team(8, 'No Team Assigned', organization_id=None),
    Team(9, 'New York Mets', 'New York', 'Mets', 'NYM', 1),
    Team(10, 'Texas Rangers', 'Texas', 'Rangers', 'TEX', 1),
    Team(11, 'Philadelphia Phillies', 'Philadelphia', 'Phillies', 'PHI', 1),
    Team(12, 'Chicago White Sox', 'Chicago', 'White Sox', 'CHW', 1),
    Team(13, 'Edmonton Oilers', 'Edmonton', 'Oilers', 'EDM', 4),
]

PLAYERS = [
    Player(1, 'Mike', 'Trout'),
    Player(2, 'Aaron', 'Judge'),
    Player(3, 'José', 'Ramírez'),
    Player(4, 'Steven', 'Kwan'),
    Player(5, 'Ichiro', 'Suzuki'),
    Player(6, 'Shohei', 'Ohtani'),
    Player(7, 'Will', 'Smith'),
    Player(8, 'Will', 'Smith'),
    Player(9, 'J.T.', 'Realmuto'),
    Player(10, 'Orestes', 'Miñoso', nick_name='Minnie'),
    Player(11, 'Colin', 'Kaepernick'),
    Player(12, 'Connor', 'McDavid'),
]

PLAYER_TEAMS = [
    PlayerTeam(100, 1, 1),
    PlayerTeam(101, 2, 2),
    PlayerTeam(102, 3, 3),
    PlayerTeam(103, 4, 3),
    PlayerTeam(104, 5, 4),
    PlayerTeam(105, 6, 1),
    PlayerTeam(106, 6, 5),
    PlayerTeam(107, 7, 5),
    PlayerTeam(108, 8, 10),
    PlayerTeam(109, 9, 11),
    PlayerTeam(110, 10, 12),
    PlayerTeam(111, 11, 6),
    PlayerTeam(112, 12, 13),
]

ALIASES = [PlayerAlias(6, 'Sho Time')]

SETS = [
    CardSet(1, 'Topps Chrome', 2024, 1),
    CardSet(2, 'Topps Chrome', 2023, 1),
    CardSet(3, 'Bowman', 2024, 1),
    CardSet(4, 'Topps Chrome Update', 2024, 1),
]

SERIES = [
    Series(10, 'Topps Chrome', 1),
    Series(11, 'Gold Refractors', 1, parallel_of=10, color_id=1),
    Series(12, 'Refractors', 1, parallel_of=10),
    Series(20, 'Bowman Base', 3, is_base=True),
    Series(21, 'Bowman Chrome Prospects', 3),
    Series(22, 'Bowman', 3),
]

COLORS = [
    Color(1, 'Gold'),
    Color(2, 'Gold Refractor'),
    Color(3, 'Orange Wave'),
]

CARDS = [ExistingCard(500, 10, '1', (100,))]


class RecordingCatalog(InMemoryCatalog):
    """InMemoryCatalog that records every query and can fail selected ones."""

    def __init__(self, *args, fail=(), **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = []
        self.fail = set(fail)

    def _record(self, name, *args):
        self.calls.append((name, args))
        if name in self.fail:
            raise ConnectionError(f'{name}: Verbindung abgebrochen')

    def count(self, name):
        return sum(1 for call, _ in self.calls if call == name)

    def find_sets(self, year=None):
        self._record('find_sets', year)
        return super().find_sets(year)

    def find_series_by_set(self, set_id):
        self._record('find_series_by_set', set_id)
        return super().find_series_by_set(set_id)

    def find_colors(self):
        self._record('find_colors')
        return super().find_colors()

    def find_teams_matching_any(self, candidate_names, organization_ids=None):
        self._record('find_teams_matching_any', list(candidate_names), organization_ids)
        return super().find_teams_matching_any(candidate_names, organization_ids)

    def find_players_with_teams(self, organization_ids=None):
        self._record('find_players_with_teams', organization_ids)
        return super().find_players_with_teams(organization_ids)

    def find_player_aliases(self):
        self._record('find_player_aliases')
        return super().find_player_aliases()

    def find_existing_player_team_associations(self, pairs):
        pairs = list(pairs)
        self._record('find_existing_player_team_associations', pairs)
        return super().find_existing_player_team_associations(pairs)


@pytest.fixture
def make_catalog():
    """Factory for a recording catalog over the sample data."""
    def _make(fail=()):
        return RecordingCatalog(
            sets=SETS, series=SERIES, colors=COLORS, teams=TEAMS, players=PLAYERS,
            player_teams=PLAYER_TEAMS, aliases=ALIASES, cards=CARDS, fail=fail,
        )
    return _make


@pytest.fixture
def catalog(make_catalog):
    """Recording catalog over the sample data."""
    return make_catalog()


@pytest.fixture
def index(catalog):
    """Reference index holding every player, team and color of the sample data."""
    return ReferenceIndex(
        catalog=catalog,
        players=group_players(catalog.find_players_with_teams()),
        teams=list(TEAMS),
        aliases=index_aliases(ALIASES),
        colors=list(COLORS),
    )


@pytest.fixture
def make_card():
    """Factory for provisional cards of the 2024 Topps Chrome set."""
    def _make(**kwargs) -> ProvisionalCard:
        defaults = dict(
            card_number='1', player_names='Mike Trout', team_names='Angels',
            year=2024, set_name='Topps Chrome', sort_order=1,
        )
        defaults.update(kwargs)
        return ProvisionalCard(**defaults)
    return _make
