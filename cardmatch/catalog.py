"""Read-only reference catalog interface and an in-memory implementation."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import Optional

from cardmatch import (
    CardSet,
    Color,
    ExistingCard,
    Player,
    PlayerAlias,
    PlayerTeam,
    Series,
    Team,
)
from cardmatch.scoring import normalize, normalize_team

log = logging.getLogger(__name__)

# Organization IDs: 1=MLB, 2=NFL, 3=NBA, 4=NHL, 5=NCAA
PRO_ORGANIZATIONS = frozenset({1, 2, 3, 4})
AMATEUR_ORGANIZATION = 5


class CatalogUnavailable(RuntimeError):
    """The catalog could not be queried at all."""


def organization_filter(
    organization_id: Optional[int],
    pro_organizations: Iterable[int] = PRO_ORGANIZATIONS,
    amateur_organization: Optional[int] = AMATEUR_ORGANIZATION,
) -> Optional[list[int]]:
    """Build the organization filter for player lookups.

    College players show up on professional cards (draft picks, prospects),
    so the amateur organization is always added when a professional
    organization is requested.

    Args:
        organization_id: Organization of the imported set, or None.
        pro_organizations: Organizations treated as professional leagues.
        amateur_organization: Organization to add for professional leagues.

    Returns:
        List of organization IDs, or None for no filtering.
    """
    if organization_id is None:
        return None
    orgs = [organization_id]
    if (
        organization_id in set(pro_organizations)
        and amateur_organization is not None
        and amateur_organization not in orgs
    ):
        orgs.append(amateur_organization)
    return orgs


class Catalog(ABC):
    """Side-effect free queries against the reference catalog.

    Every method returns an immutable snapshot. Implementations backed by a
    database are expected to answer each call with one (parameterized)
    batch query, never one query per value.
    """

    @abstractmethod
    def find_sets(self, year: Optional[int] = None) -> list[CardSet]:
        """All sets of a year (all sets if year is None)."""
        ...

    @abstractmethod
    def find_series_by_set(self, set_id: int) -> list[Series]:
        """All series of a set."""
        ...

    @abstractmethod
    def find_colors(self) -> list[Color]:
        """All colors."""
        ...

    @abstractmethod
    def find_teams_matching_any(
        self,
        candidate_names: Sequence[str],
        organization_ids: Optional[Sequence[int]] = None,
    ) -> list[Team]:
        """Teams whose name, city, mascot or abbreviation matches any candidate.

        Candidates are team-normalized names. A team matches if one of its
        normalized fields equals a candidate, contains it, or (for the name)
        is contained in it.
        """
        ...

    @abstractmethod
    def find_players_with_teams(
        self,
        organization_ids: Optional[Sequence[int]] = None,
    ) -> list[tuple[Player, Optional[Team]]]:
        """One row per (player, associated team); team is None for players without teams.

        With an organization filter, only players without any team or with
        at least one team in the given organizations are returned.
        """
        ...

    @abstractmethod
    def find_player_aliases(self) -> list[PlayerAlias]:
        """All registered player aliases."""
        ...

    @abstractmethod
    def find_existing_player_team_associations(
        self,
        pairs: Iterable[tuple[int, int]],
    ) -> list[PlayerTeam]:
        """Existing associations for the given (player_id, team_id) pairs."""
        ...

    @abstractmethod
    def find_existing_card(
        self,
        series_id: int,
        card_number: str,
        player_team_ids: Sequence[int] = (),
    ) -> Optional[ExistingCard]:
        """An existing card with this number in the series, or None."""
        ...


class InMemoryCatalog(Catalog):
    """Catalog over plain lists, e.g. loaded from CSV exports."""

    def __init__(
        self,
        sets: Iterable[CardSet] = (),
        series: Iterable[Series] = (),
        colors: Iterable[Color] = (),
        teams: Iterable[Team] = (),
        players: Iterable[Player] = (),
        player_teams: Iterable[PlayerTeam] = (),
        aliases: Iterable[PlayerAlias] = (),
        cards: Iterable[ExistingCard] = (),
    ):
        self.sets = list(sets)
        self.series = list(series)
        self.colors = list(colors)
        self.teams = list(teams)
        self.players = list(players)
        self.player_teams = list(player_teams)
        self.aliases = list(aliases)
        self.cards = list(cards)
        self._teams_by_id = {t.team_id: t for t in self.teams}

    def find_sets(self, year: Optional[int] = None) -> list[CardSet]:
        return [s for s in self.sets if year is None or s.year == year]

    def find_series_by_set(self, set_id: int) -> list[Series]:
        return [s for s in self.series if s.set_id == set_id]

    def find_colors(self) -> list[Color]:
        return list(self.colors)

    def find_teams_matching_any(
        self,
        candidate_names: Sequence[str],
        organization_ids: Optional[Sequence[int]] = None,
    ) -> list[Team]:
        candidates = {normalize_team(c) for c in candidate_names if c}
        candidates.discard('')
        if not candidates:
            return []

        result = []
        for team in self.teams:
            if organization_ids is not None and team.organization_id not in organization_ids:
                continue
            name = normalize_team(team.name)
            fields = [
                name,
                normalize_team(team.city),
                normalize_team(team.mascot),
                normalize_team(team.abbreviation),
            ]
            if any(
                cand == f or (f and cand in f) or (name and name in cand)
                for cand in candidates
                for f in fields
            ):
                result.append(team)
        log.debug("%d Teams fuer %d Suchbegriffe gefunden", len(result), len(candidates))
        return result

    def find_players_with_teams(
        self,
        organization_ids: Optional[Sequence[int]] = None,
    ) -> list[tuple[Player, Optional[Team]]]:
        teams_by_player: dict[int, list[Team]] = {}
        for pt in self.player_teams:
            team = self._teams_by_id.get(pt.team_id)
            if team is not None:
                teams_by_player.setdefault(pt.player_id, []).append(team)

        rows: list[tuple[Player, Optional[Team]]] = []
        for player in self.players:
            teams = teams_by_player.get(player.player_id, [])
            if organization_ids is not None and teams and not any(
                t.organization_id in organization_ids for t in teams
            ):
                continue
            if not teams:
                rows.append((player, None))
            for team in teams:
                rows.append((player, team))
        return rows

    def find_player_aliases(self) -> list[PlayerAlias]:
        return list(self.aliases)

    def find_existing_player_team_associations(
        self,
        pairs: Iterable[tuple[int, int]],
    ) -> list[PlayerTeam]:
        wanted = set(pairs)
        if not wanted:
            return []
        return [pt for pt in self.player_teams if (pt.player_id, pt.team_id) in wanted]

    def find_existing_card(
        self,
        series_id: int,
        card_number: str,
        player_team_ids: Sequence[int] = (),
    ) -> Optional[ExistingCard]:
        number = normalize(str(card_number))
        cards = [
            c for c in self.cards
            if c.series_id == series_id and normalize(c.card_number) == number
        ]
        if not cards:
            return None
        if not player_team_ids:
            return cards[0]

        wanted = set(player_team_ids)
        for card in cards:
            if set(card.player_team_ids) == wanted:
                return card
        return None
