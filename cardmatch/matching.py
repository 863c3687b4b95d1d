"""Multi-stage matchers for sets, series, colors, teams and players."""

import logging
from dataclasses import replace
from typing import NamedTuple, Optional

from cardmatch import CardSet, Candidate, MatchResult, Player, Team
from cardmatch.index import ReferenceIndex
from cardmatch.scoring import (
    DEFAULT_POLICY,
    MatchPolicy,
    edit_distance,
    last_token,
    normalize,
    normalize_team,
    similarity,
)

log = logging.getLogger(__name__)

BASE_SERIES_NAMES = frozenset({'', 'base', 'base set'})


def _candidate(entity_type: str, entity_id: int, name: str, confidence: float,
               match_type: str, entity: object) -> Candidate:
    return Candidate(
        entity_type=entity_type,
        entity_id=entity_id,
        name=name,
        confidence=round(confidence, 4),
        match_type=match_type,
        entity=entity,
    )


def _contained(a: str, b: str) -> bool:
    return bool(a) and bool(b) and (a in b or b in a)


def match_set(name: str, year: Optional[int], index: ReferenceIndex,
              policy: MatchPolicy = DEFAULT_POLICY) -> MatchResult:
    """Match a set name within a year.

    Exact on the normalized name; otherwise sets whose name contains or is
    contained in the input with similarity >= ``policy.set_similarity``.
    """
    result = MatchResult()
    key = normalize(name)
    if not key:
        return result

    sets = index.sets_for_year(year)
    for card_set in sets:
        if normalize(card_set.name) == key:
            result.exact.append(_candidate('set', card_set.set_id, card_set.name, 1.0, 'EXACT', card_set))
    if result.exact:
        return result

    scored = []
    for card_set in sets:
        set_key = normalize(card_set.name)
        if not _contained(key, set_key):
            continue
        score = similarity(key, set_key)
        if score >= policy.set_similarity:
            scored.append((score, card_set))
    scored.sort(key=lambda item: (-item[0], len(item[1].name)))
    result.fuzzy = [
        _candidate('set', s.set_id, s.name, score, 'FUZZY', s)
        for score, s in scored[:policy.max_fuzzy_candidates]
    ]
    return result


def match_series(name: str, card_set: Optional[CardSet], index: ReferenceIndex,
                 policy: MatchPolicy = DEFAULT_POLICY) -> MatchResult:
    """Match a series inside an already resolved set.

    A blank name, 'base' or 'base set' selects the base series of the set:
    the series flagged as base, else the series named like the set, lowest
    id first. Base series carry the set's name, not 'Base'.
    """
    result = MatchResult()
    if card_set is None:
        return result

    series_list = index.series_for_set(card_set.set_id)
    key = normalize(name)

    if key in BASE_SERIES_NAMES:
        set_key = normalize(card_set.name)
        base = (
            [s for s in series_list if s.is_base]
            or [s for s in series_list if normalize(s.name) == set_key]
        )
        if base:
            series = min(base, key=lambda s: s.series_id)
            result.exact.append(_candidate('series', series.series_id, series.name, 1.0, 'BASE', series))
        else:
            log.debug("Keine Basis-Serie fuer Set %s", card_set.name)
        return result

    for series in series_list:
        if normalize(series.name) == key:
            result.exact.append(_candidate('series', series.series_id, series.name, 1.0, 'EXACT', series))
    if result.exact:
        return result

    scored = []
    for series in series_list:
        series_key = normalize(series.name)
        if not _contained(key, series_key):
            continue
        score = similarity(key, series_key)
        if score >= policy.series_similarity:
            scored.append((score, series))
    scored.sort(key=lambda item: (-item[0], len(item[1].name)))
    result.fuzzy = [
        _candidate('series', s.series_id, s.name, score, 'FUZZY', s)
        for score, s in scored[:policy.max_fuzzy_candidates]
    ]
    return result


def match_color(name: str, index: ReferenceIndex,
                policy: MatchPolicy = DEFAULT_POLICY) -> MatchResult:
    """Match an optional color/parallel name; fuzzy candidates shortest name first."""
    result = MatchResult()
    key = normalize(name)
    if not key:
        return result

    for color in index.colors:
        if normalize(color.name) == key:
            result.exact.append(_candidate('color', color.color_id, color.name, 1.0, 'EXACT', color))
    if result.exact:
        return result

    scored = []
    for color in index.colors:
        color_key = normalize(color.name)
        if not _contained(key, color_key):
            continue
        score = similarity(key, color_key)
        if score >= policy.color_similarity:
            scored.append((score, color))
    scored.sort(key=lambda item: (len(item[1].name), -item[0]))
    result.fuzzy = [
        _candidate('color', c.color_id, c.name, score, 'FUZZY', c)
        for score, c in scored[:policy.max_fuzzy_candidates]
    ]
    return result


def team_similarity(name: str, team: Team) -> float:
    """Best similarity of a name to the team's name, city, mascot or abbreviation."""
    key = normalize_team(name)
    fields = (team.name, team.mascot, team.city, team.abbreviation)
    return max((similarity(key, normalize_team(f)) for f in fields if f), default=0.0)


def match_team(name: str, index: ReferenceIndex,
               policy: MatchPolicy = DEFAULT_POLICY) -> MatchResult:
    """Match a team name against name, city, mascot and abbreviation.

    Fuzzy candidates are scored by the best name/city/mascot similarity,
    kept above ``policy.team_fuzzy_similarity`` and ranked abbreviation
    prefix first, then name prefix, then score, then shorter name.
    """
    result = MatchResult()
    key = normalize_team(name)
    if not key:
        return result

    for team in index.teams:
        fields = (team.name, team.city, team.mascot, team.abbreviation)
        if any(normalize_team(f) == key for f in fields if f):
            result.exact.append(_candidate('team', team.team_id, team.name, 1.0, 'EXACT', team))
    if result.exact:
        return result

    ranked = []
    for team in index.teams:
        score = max(
            (similarity(key, normalize_team(f)) for f in (team.name, team.city, team.mascot) if f),
            default=0.0,
        )
        if score <= policy.team_fuzzy_similarity:
            continue
        abbr = normalize_team(team.abbreviation)
        abbr_hit = bool(abbr) and (key.startswith(abbr) or abbr.startswith(key))
        name_prefix = normalize_team(team.name).startswith(key)
        ranked.append(((not abbr_hit, not name_prefix, -score, len(team.name)), score, team))
    ranked.sort(key=lambda item: item[0])
    result.fuzzy = [
        _candidate('team', t.team_id, t.name, score, 'FUZZY', t)
        for _, score, t in ranked[:policy.max_fuzzy_candidates]
    ]
    return result


def accepted_teams(result: MatchResult, policy: MatchPolicy = DEFAULT_POLICY) -> list[Candidate]:
    """Teams a name may stand for.

    All exact matches, or else the top fuzzy match if it reaches
    ``policy.team_similarity``. Several exact matches (a shared city such
    as 'Los Angeles') still need narrowing before one is selected.
    """
    if result.exact:
        return list(result.exact)
    if result.fuzzy and result.fuzzy[0].confidence >= policy.team_similarity:
        return [result.fuzzy[0]]
    return []


class _NameKeys(NamedTuple):
    first: str
    last: str
    nick: str
    full: str
    swapped: str
    nick_full: str


def _build_name_keys(player: Player) -> _NameKeys:
    first = normalize(player.first_name)
    last = normalize(player.last_name)
    nick = normalize(player.nick_name)
    return _NameKeys(
        first=first,
        last=last,
        nick=nick,
        full=f'{first} {last}'.strip(),
        swapped=f'{last} {first}'.strip(),
        nick_full=f'{nick} {last}'.strip() if nick else '',
    )


def _name_keys(player: Player, index: ReferenceIndex) -> _NameKeys:
    """Normalized name variants of a player, cached on the job's index."""
    keys = index.name_keys.get(player.player_id)
    if keys is None:
        keys = index.name_keys[player.player_id] = _build_name_keys(player)
    return keys


def _player_query(name: str) -> str:
    """Normalize a player name, turning 'Last, First' into 'first last'."""
    raw = (name or '').strip()
    if ',' in raw:
        last, _, first = raw.partition(',')
        raw = f'{first.strip()} {last.strip()}'
    return normalize(raw)


def _score_player(key: str, keys: _NameKeys, policy: MatchPolicy) -> Optional[tuple[float, str]]:
    """Fuzzy-score a query against one player, or None if it is not close enough."""
    surname_match = bool(keys.last) and last_token(key) == last_token(keys.last)
    best: Optional[tuple[float, str]] = None
    for variant in (keys.full, keys.nick_full):
        if not variant:
            continue
        score = similarity(key, variant)
        if policy.accepts_player(edit_distance(key, variant), score, surname_match):
            if best is None or score > best[0]:
                best = (score, 'FUZZY')

    if best is None:
        tokens = key.split(' ')
        if len(tokens) >= 2:
            prefix = keys.first.startswith(tokens[0]) and keys.last.startswith(tokens[-1])
        else:
            prefix = len(key) >= 3 and (keys.first.startswith(key) or keys.last.startswith(key))
        if prefix:
            best = (similarity(key, keys.full), 'PREFIX')
    return best


def match_player(name: str, index: ReferenceIndex,
                 policy: MatchPolicy = DEFAULT_POLICY) -> MatchResult:
    """Match a player name against the reference index.

    Uses a multi-stage approach, stopping at the first stage with hits:
    1. Exact full name, or nickname plus last name
    2. Name-swap detection ('Trout Mike')
    3. Registered alias
    4. Fuzzy: single-token first/last name (SINGLE_NAME), edit-distance and
       similarity acceptance, or first/last name prefixes

    Stages 1-3 yield confidence 1.0 in ``exact``. Fuzzy candidates are
    ranked best first and capped; when a single-token match exists it is
    kept and only ``policy.max_trailing_candidates`` others follow it.

    Args:
        name: 'First Last' or 'Last, First'.
        index: Reference index of the job.
        policy: Match thresholds.

    Returns:
        MatchResult with exact and fuzzy candidates.
    """
    result = MatchResult()
    key = _player_query(name)
    if not key:
        return result

    def add(record, confidence, match_type, target):
        p = record.player
        target.append(_candidate('player', p.player_id, p.full_name, confidence, match_type, record))

    # Stage 1: exact name or nickname
    for record in index.players:
        keys = _name_keys(record.player, index)
        if keys.full == key:
            add(record, 1.0, 'EXACT', result.exact)
        elif keys.nick_full and keys.nick_full == key:
            add(record, 1.0, 'NICKNAME', result.exact)
    if result.exact:
        return result

    # Stage 2: swapped first/last name
    for record in index.players:
        if _name_keys(record.player, index).swapped == key:
            add(record, 1.0, 'NAME_SWAP', result.exact)
    if result.exact:
        return result

    # Stage 3: alias
    for player_id in index.aliases.get(key, []):
        record = index.record(player_id)
        if record is not None:
            add(record, 1.0, 'ALIAS', result.exact)
    if result.exact:
        return result

    # Stage 4: fuzzy
    single_token = ' ' not in key
    singles = []
    others = []
    for record in index.players:
        keys = _name_keys(record.player, index)
        if single_token and key in (keys.first, keys.last):
            add(record, policy.single_name_confidence, 'SINGLE_NAME', singles)
            continue
        scored = _score_player(key, keys, policy)
        if scored is not None:
            add(record, scored[0], scored[1], others)

    others.sort(key=lambda c: (-c.confidence, c.name))
    if singles:
        result.fuzzy = singles[:policy.max_fuzzy_candidates] + others[:policy.max_trailing_candidates]
    else:
        result.fuzzy = others[:policy.max_fuzzy_candidates]
    return result


def apply_team_context(result: MatchResult, team_names: list[str], index: ReferenceIndex,
                       policy: MatchPolicy = DEFAULT_POLICY) -> MatchResult:
    """Prefer player candidates associated with one of the given teams.

    A candidate qualifies if one of its teams matches a team name with
    similarity >= ``policy.team_context_similarity``. Qualified candidates
    move to the front; all others are capped at
    ``policy.team_mismatch_confidence``.

    Returns:
        New MatchResult; the input is left unchanged.
    """
    names = [n for n in team_names if n and n.strip()]
    if not names or not result.found:
        return result

    def qualifies(candidate: Candidate) -> bool:
        record = index.record(candidate.entity_id)
        if record is None:
            return False
        return any(
            team_similarity(n, team) >= policy.team_context_similarity
            for team in record.teams
            for n in names
        )

    def rerank(candidates: list[Candidate]) -> list[Candidate]:
        preferred = []
        capped = []
        for c in candidates:
            if qualifies(c):
                preferred.append(c)
            else:
                capped.append(replace(c, confidence=min(c.confidence, policy.team_mismatch_confidence)))
        return preferred + capped

    return MatchResult(exact=rerank(result.exact), fuzzy=rerank(result.fuzzy))
