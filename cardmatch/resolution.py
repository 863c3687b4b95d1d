"""Resolution of provisional cards against the reference catalog."""

import logging
from collections.abc import Iterable
from typing import Optional

from cardmatch import (
    Candidate,
    ExistingCard,
    MatchResult,
    PlayerFieldEntry,
    PlayerResolution,
    ProvisionalCard,
    ResolutionRecord,
)
from cardmatch.catalog import Catalog
from cardmatch.index import ReferenceIndex
from cardmatch.matching import (
    accepted_teams,
    apply_team_context,
    match_color,
    match_player,
    match_series,
    match_set,
    match_team,
)
from cardmatch.parsing import parse_multi_entity_field, parse_player_entries
from cardmatch.progress import (
    STATUS_EXTRACTING,
    STATUS_LOOKUP,
    STATUS_MATCHING,
    InMemoryJobStore,
    JobProgress,
    JobStore,
)
from cardmatch.scoring import DEFAULT_POLICY, MatchPolicy, normalize, normalize_team

log = logging.getLogger(__name__)


def _confident(candidate: Optional[Candidate], policy: MatchPolicy) -> bool:
    return candidate is not None and candidate.confidence >= policy.resolved_confidence


def aggregate(
    card: ProvisionalCard,
    set_matches: MatchResult,
    series_matches: MatchResult,
    color_matches: MatchResult,
    players: list[PlayerResolution],
    team_matches: dict[str, MatchResult],
    policy: MatchPolicy = DEFAULT_POLICY,
) -> ResolutionRecord:
    """Combine the matcher outputs of one card into a ResolutionRecord.

    The card is fully resolved when the set, the series (if a series name
    was given or a base series exists) and every player are selected with
    confidence >= ``policy.resolved_confidence``.
    """
    record = ResolutionRecord(
        card=card,
        set_matches=set_matches,
        series_matches=series_matches,
        color_matches=color_matches,
        card_set=set_matches.best,
        series=series_matches.best,
        color=color_matches.best,
        players=players,
        team_matches=team_matches,
    )

    record.requires_new_set = bool(normalize(card.set_name)) and not set_matches.found
    series_given = bool(normalize(card.series_name))
    record.requires_new_series = (
        series_given
        and not series_matches.found
        and (record.card_set is not None or record.requires_new_set)
    )
    record.requires_new_player = any(p.requires_new_player for p in players)
    record.requires_new_team = (
        any(p.requires_new_team for p in players)
        or any(not accepted_teams(m, policy) for m in team_matches.values())
    )

    series_required = series_given or series_matches.found
    record.fully_resolved = (
        _confident(record.card_set, policy)
        and (not series_required or _confident(record.series, policy))
        and bool(players)
        and all(_confident(p.selected_player, policy) for p in players)
    )
    return record


class ResolutionEngine:
    """Resolves provisional cards in bulk or one at a time.

    Both paths share the same matching: the catalog data of all cards is
    loaded once into a ReferenceIndex, then every card is matched in input
    order against that index.

    Args:
        catalog: Read-only reference catalog.
        policy: Match thresholds.
        job_store: Progress store for batch jobs.
        organization_id: Organization of the imported set, or None.
        max_workers: Parallel catalog queries while building the index.
        progress_interval: Publish progress every N cards.
    """

    def __init__(
        self,
        catalog: Catalog,
        policy: MatchPolicy = DEFAULT_POLICY,
        job_store: Optional[JobStore] = None,
        organization_id: Optional[int] = None,
        max_workers: int = 4,
        progress_interval: int = 50,
    ):
        if progress_interval < 1:
            raise ValueError(f"progress_interval muss >= 1 sein, nicht {progress_interval}")
        self.catalog = catalog
        self.policy = policy
        self.job_store = job_store if job_store is not None else InMemoryJobStore()
        self.organization_id = organization_id
        self.max_workers = max_workers
        self.progress_interval = progress_interval

    def start_job(self, total: int = 0) -> str:
        """Register a batch job so its id can be polled before resolution starts."""
        return self.job_store.create_job(total=total, prefix='import')

    def get_progress(self, job_id: str) -> JobProgress:
        return self.job_store.get_progress(job_id)

    def resolve(self, card: ProvisionalCard) -> Optional[ResolutionRecord]:
        """Resolve a single card; returns None for a card missing required fields."""
        if not self._is_valid(card):
            return None
        return self._resolve_all([card])[0]

    def resolve_batch(
        self,
        cards: Iterable[ProvisionalCard],
        job_id: Optional[str] = None,
    ) -> list[ResolutionRecord]:
        """Resolve a whole batch with one index build, publishing progress.

        Cards without a player field or set name are skipped. On a fatal
        error the job is marked as failed and the exception propagates.

        Args:
            cards: Provisional cards in file order (already merged).
            job_id: Job to report progress to; a new one is created if None.

        Returns:
            One ResolutionRecord per valid card, in input order.
        """
        valid = [card for card in cards if self._is_valid(card)]
        if job_id is None:
            job_id = self.start_job(total=len(valid))
        else:
            self.job_store.update(job_id, total=len(valid))

        try:
            records = self._resolve_all(valid, job_id)
        except Exception as exc:
            log.error("Job %s abgebrochen: %s", job_id, exc)
            self.job_store.fail(job_id, str(exc))
            raise

        self.job_store.complete(job_id, result=records)
        log.info(
            "%d Karten aufgeloest, %d vollstaendig",
            len(records), sum(1 for r in records if r.fully_resolved),
        )
        return records

    def find_existing_card(self, record: ResolutionRecord) -> Optional[ExistingCard]:
        """Look up a card with the same series, number and player-team associations."""
        if record.series is None or not record.card.card_number:
            return None
        player_team_ids = [pt for p in record.players for pt in p.player_team_ids]
        return self.catalog.find_existing_card(
            record.series.entity_id, record.card.card_number, player_team_ids,
        )

    @staticmethod
    def _is_valid(card: ProvisionalCard) -> bool:
        if not (card.player_names or '').strip():
            log.warning("Karte %s uebersprungen: keine Spieler", card.card_number or '?')
            return False
        if not (card.set_name or '').strip():
            log.warning("Karte %s uebersprungen: kein Set", card.card_number or '?')
            return False
        return True

    def _update(self, job_id: Optional[str], **changes) -> None:
        if job_id is not None:
            self.job_store.update(job_id, **changes)

    def _resolve_all(
        self,
        cards: list[ProvisionalCard],
        job_id: Optional[str] = None,
    ) -> list[ResolutionRecord]:
        policy = self.policy

        self._update(job_id, status=STATUS_EXTRACTING)
        entries = [parse_player_entries(card.player_names, card.team_names) for card in cards]
        player_names: dict[str, str] = {}
        team_names: dict[str, str] = {}
        for card, card_entries in zip(cards, entries):
            for entry in card_entries:
                player_names.setdefault(normalize(entry.player_name), entry.player_name)
            for team in parse_multi_entity_field(card.team_names):
                team_names.setdefault(normalize_team(team), team)
        log.debug("%d Spielernamen, %d Teamnamen", len(player_names), len(team_names))

        self._update(job_id, status=STATUS_LOOKUP)
        index = ReferenceIndex.build(self.catalog, cards, self.organization_id, self.max_workers)
        players = {key: match_player(raw, index, policy) for key, raw in player_names.items()}
        teams = {key: match_team(raw, index, policy) for key, raw in team_names.items()}

        pairs = set()
        for card_entries in entries:
            for entry in card_entries:
                guessed = self._guessed_teams(entry, teams, index)
                for candidate in players[normalize(entry.player_name)].candidates:
                    pairs.update((candidate.entity_id, t.entity_id) for t in guessed)
        index.attach_associations(pairs)
        if index.failures:
            log.warning("Katalogabfragen fehlgeschlagen: %s", ', '.join(index.failures))

        self._update(job_id, status=STATUS_MATCHING)
        records = []
        total = len(cards)
        for i, (card, card_entries) in enumerate(zip(cards, entries), start=1):
            records.append(self._resolve_card(card, card_entries, index, players, teams))
            if i % self.progress_interval == 0 or i == total:
                self._update(
                    job_id, processed=i,
                    current_card=f'Card {card.sort_order}: {card.card_number}',
                )
        return records

    def _guessed_teams(
        self,
        entry: PlayerFieldEntry,
        teams: dict[str, MatchResult],
        index: ReferenceIndex,
    ) -> list[Candidate]:
        """Accepted teams for an entry's team guess, or placeholder teams if the card has none."""
        if not entry.team_guess:
            return [
                Candidate('team', t.team_id, t.name, 1.0, 'PLACEHOLDER', t)
                for t in index.placeholder_teams
            ]
        guessed: list[Candidate] = []
        for name in entry.team_guess:
            for candidate in accepted_teams(teams[normalize_team(name)], self.policy):
                if all(c.entity_id != candidate.entity_id for c in guessed):
                    guessed.append(candidate)
        return guessed

    def _resolve_card(
        self,
        card: ProvisionalCard,
        entries: list[PlayerFieldEntry],
        index: ReferenceIndex,
        players: dict[str, MatchResult],
        teams: dict[str, MatchResult],
    ) -> ResolutionRecord:
        policy = self.policy
        set_matches = match_set(card.set_name, card.year, index, policy)
        card_set = set_matches.best
        series_matches = match_series(
            card.series_name, card_set.entity if card_set else None, index, policy,
        )
        color_matches = match_color(card.color_name, index, policy)

        team_matches = {
            name: teams[normalize_team(name)]
            for name in parse_multi_entity_field(card.team_names)
        }
        resolutions = [
            self._resolve_entry(entry, players[normalize(entry.player_name)], teams, index)
            for entry in entries
        ]
        return aggregate(
            card, set_matches, series_matches, color_matches, resolutions, team_matches, policy,
        )

    def _resolve_entry(
        self,
        entry: PlayerFieldEntry,
        player_matches: MatchResult,
        teams: dict[str, MatchResult],
        index: ReferenceIndex,
    ) -> PlayerResolution:
        policy = self.policy
        guessed = self._guessed_teams(entry, teams, index)
        guess_results = [teams[normalize_team(name)] for name in entry.team_guess]
        team_result = MatchResult(
            exact=[c for r in guess_results for c in r.exact],
            fuzzy=[c for r in guess_results for c in r.fuzzy],
        )
        if not entry.team_guess:
            team_result = MatchResult(exact=list(guessed))

        matches = apply_team_context(player_matches, list(entry.team_guess), index, policy)
        resolution = PlayerResolution(
            entry=entry,
            player_matches=matches,
            team_matches=team_result,
            requires_new_player=not matches.found,
            requires_new_team=any(not accepted_teams(r, policy) for r in guess_results),
            needs_review=entry.needs_review,
        )

        candidates = matches.candidates
        selected = None
        if len(candidates) == 1:
            selected = candidates[0]
        elif len(candidates) > 1:
            linked = [
                c for c in candidates
                if any(index.has_association(c.entity_id, t.entity_id) for t in guessed)
            ]
            if len(linked) == 1:
                selected = linked[0]
                log.debug("%s ueber Team-Zuordnung eindeutig", entry.player_name)
            else:
                resolution.needs_review = True

        if selected is not None:
            selected_teams, ambiguous = self._teams_for_player(selected, entry, teams, guessed, index)
            if ambiguous:
                resolution.needs_review = True
            resolution.selected_player = selected
            resolution.selected_teams = selected_teams
            resolution.player_team_ids = [
                pt_id for pt_id in (index.association_id(selected.entity_id, t.entity_id) for t in selected_teams)
                if pt_id is not None
            ]
        return resolution

    def _teams_for_player(
        self,
        player: Candidate,
        entry: PlayerFieldEntry,
        teams: dict[str, MatchResult],
        guessed: list[Candidate],
        index: ReferenceIndex,
    ) -> tuple[list[Candidate], bool]:
        """Teams to link a selected player to, and whether a team name was ambiguous.

        A team name with several accepted teams keeps only the one the player
        is already associated with. If that does not leave exactly one team,
        the name selects nothing and the entry needs review.
        """
        if not entry.team_guess:
            return list(guessed), False

        selected: list[Candidate] = []
        ambiguous = False
        for name in entry.team_guess:
            options = accepted_teams(teams[normalize_team(name)], self.policy)
            if len(options) > 1:
                options = [t for t in options if index.has_association(player.entity_id, t.entity_id)]
                if len(options) != 1:
                    log.debug("Team '%s' fuer %s mehrdeutig", name, player.name)
                    ambiguous = True
                    continue
            for team in options:
                if all(c.entity_id != team.entity_id for c in selected):
                    selected.append(team)
        return selected, ambiguous
