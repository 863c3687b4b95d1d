"""Reference index: one batch load of catalog data per resolution job."""

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Optional

from cardmatch import (
    CardSet,
    Color,
    Player,
    PlayerAlias,
    PlayerRecord,
    PlayerTeam,
    ProvisionalCard,
    Series,
    Team,
)
from cardmatch.catalog import Catalog, CatalogUnavailable, organization_filter
from cardmatch.parsing import parse_multi_entity_field
from cardmatch.scoring import normalize, normalize_team

log = logging.getLogger(__name__)

# Teams used for players on cards that list no team
PLACEHOLDER_TEAM_NAMES = ('No Team', 'No Name', 'No Team Assigned', 'None')


def group_players(rows: Iterable[tuple[Player, Optional[Team]]]) -> list[PlayerRecord]:
    """Group (player, team) rows by player id with deduplicated team lists."""
    records: dict[int, PlayerRecord] = {}
    for player, team in rows:
        record = records.get(player.player_id)
        if record is None:
            record = records[player.player_id] = PlayerRecord(player=player)
        if team is not None and all(t.team_id != team.team_id for t in record.teams):
            record.teams.append(team)
    return list(records.values())


def index_aliases(aliases: Iterable[PlayerAlias]) -> dict[str, list[int]]:
    """Map normalized alias names to the ids of the players carrying them."""
    result: dict[str, list[int]] = {}
    for alias in aliases:
        key = normalize(alias.alias_name)
        if not key:
            continue
        ids = result.setdefault(key, [])
        if alias.player_id not in ids:
            ids.append(alias.player_id)
    return result


@dataclass
class ReferenceIndex:
    """Read-only snapshot of the catalog data a batch needs.

    Built once per job from the distinct values of all cards, so the number
    of catalog calls depends on the number of distinct values and not on
    the number of rows. A failed bulk query leaves its entity type empty and
    is recorded in ``failures``.
    """

    catalog: Catalog
    players: list[PlayerRecord] = field(default_factory=list)
    teams: list[Team] = field(default_factory=list)
    placeholder_teams: list[Team] = field(default_factory=list)
    aliases: dict[str, list[int]] = field(default_factory=dict)
    sets_by_year: dict[Optional[int], list[CardSet]] = field(default_factory=dict)
    colors: list[Color] = field(default_factory=list)
    player_teams: dict[tuple[int, int], PlayerTeam] = field(default_factory=dict)
    failures: list[str] = field(default_factory=list)
    _series: dict[int, list[Series]] = field(default_factory=dict, repr=False)
    # Normalized name variants per player id, filled by the player matcher
    name_keys: dict[int, tuple] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        self._records = {r.player.player_id: r for r in self.players}

    @classmethod
    def build(
        cls,
        catalog: Catalog,
        cards: Iterable[ProvisionalCard],
        organization_id: Optional[int] = None,
        max_workers: int = 4,
    ) -> 'ReferenceIndex':
        """Load everything the given cards need from the catalog.

        Players, teams, aliases, sets and colors are loaded in parallel.
        Player-team associations are attached afterwards with
        :meth:`attach_associations`, once the candidate pairs are known.

        Args:
            catalog: Catalog to query.
            cards: All provisional cards of the batch.
            organization_id: Organization of the imported set, or None.
            max_workers: Number of parallel catalog queries.

        Returns:
            The populated index.

        Raises:
            CatalogUnavailable: If every catalog query failed.
        """
        cards = list(cards)
        team_names: list[str] = []
        years: dict[Optional[int], None] = {}
        needs_colors = False
        needs_placeholders = False
        for card in cards:
            teams = parse_multi_entity_field(card.team_names)
            if not teams:
                needs_placeholders = True
            for team in teams:
                key = normalize_team(team)
                if key and key not in team_names:
                    team_names.append(key)
            years[card.year] = None
            if card.color_name and card.color_name.strip():
                needs_colors = True

        team_orgs = [organization_id] if organization_id is not None else None
        tasks: dict[str, Callable[[], Any]] = {
            'players': lambda: catalog.find_players_with_teams(organization_filter(organization_id)),
            'aliases': catalog.find_player_aliases,
        }
        if team_names:
            tasks['teams'] = lambda: catalog.find_teams_matching_any(team_names, team_orgs)
        if needs_placeholders:
            tasks['placeholder_teams'] = lambda: catalog.find_teams_matching_any(
                [normalize_team(n) for n in PLACEHOLDER_TEAM_NAMES], None,
            )
        for year in years:
            tasks[f'sets:{year}'] = (lambda y=year: catalog.find_sets(y))
        if needs_colors:
            tasks['colors'] = catalog.find_colors

        results, failures = _run_queries(tasks, max_workers)
        if failures and len(failures) == len(tasks):
            raise CatalogUnavailable(
                f"Katalog nicht erreichbar, alle Abfragen fehlgeschlagen: {', '.join(failures)}"
            )

        placeholder_keys = {normalize_team(n) for n in PLACEHOLDER_TEAM_NAMES}
        placeholders = [
            t for t in results.get('placeholder_teams', [])
            if t.organization_id is None and normalize_team(t.name) in placeholder_keys
        ]

        index = cls(
            catalog=catalog,
            players=group_players(results.get('players', [])),
            teams=list(results.get('teams', [])),
            placeholder_teams=placeholders,
            aliases=index_aliases(results.get('aliases', [])),
            sets_by_year={
                year: list(results[f'sets:{year}'])
                for year in years if f'sets:{year}' in results
            },
            colors=list(results.get('colors', [])),
            failures=failures,
        )
        log.info(
            "Referenzindex: %d Spieler, %d Teams, %d Sets, %d Farben",
            len(index.players), len(index.teams),
            sum(len(s) for s in index.sets_by_year.values()), len(index.colors),
        )
        return index

    def record(self, player_id: int) -> Optional[PlayerRecord]:
        return self._records.get(player_id)

    def sets_for_year(self, year: Optional[int]) -> list[CardSet]:
        """Sets of a year, loaded on first use if the build did not cover it."""
        if year not in self.sets_by_year:
            self.sets_by_year[year] = self._query(f'sets:{year}', lambda: self.catalog.find_sets(year))
        return self.sets_by_year[year]

    def series_for_set(self, set_id: int) -> list[Series]:
        """Series of a set, memoized per set id."""
        if set_id not in self._series:
            self._series[set_id] = self._query(
                f'series:{set_id}', lambda: self.catalog.find_series_by_set(set_id),
            )
        return self._series[set_id]

    def attach_associations(self, pairs: Iterable[tuple[int, int]]) -> None:
        """Load existing associations for all candidate (player_id, team_id) pairs in one call."""
        wanted = sorted(set(pairs) - set(self.player_teams))
        if not wanted:
            return
        rows = self._query('player_teams', lambda: self.catalog.find_existing_player_team_associations(wanted))
        for pt in rows:
            self.player_teams[(pt.player_id, pt.team_id)] = pt
        log.debug("%d von %d Spieler-Team-Zuordnungen vorhanden", len(rows), len(wanted))

    def association_id(self, player_id: int, team_id: int) -> Optional[int]:
        pt = self.player_teams.get((player_id, team_id))
        return pt.player_team_id if pt else None

    def has_association(self, player_id: int, team_id: int) -> bool:
        return (player_id, team_id) in self.player_teams

    def _query(self, name: str, query: Callable[[], Any]) -> list:
        try:
            return list(query())
        except Exception:
            log.exception("Katalogabfrage '%s' fehlgeschlagen", name)
            self.failures.append(name)
            return []


def _run_queries(
    tasks: dict[str, Callable[[], Any]],
    max_workers: int,
) -> tuple[dict[str, list], list[str]]:
    """Run independent catalog queries in parallel.

    Returns:
        Tuple of (results by task name, sorted names of failed tasks).
    """
    results: dict[str, list] = {}
    failures: list[str] = []
    if not tasks:
        return results, failures

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        future_to_name = {executor.submit(query): name for name, query in tasks.items()}
        for future in as_completed(future_to_name):
            name = future_to_name[future]
            try:
                results[name] = list(future.result())
            except Exception:
                log.exception("Katalogabfrage '%s' fehlgeschlagen", name)
                failures.append(name)
    return results, sorted(failures)
