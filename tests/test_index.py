"""Tests for cardmatch.index and cardmatch.catalog modules."""

import pytest

from cardmatch import Player, PlayerAlias, Team
from cardmatch.catalog import CatalogUnavailable, organization_filter
from cardmatch.index import ReferenceIndex, group_players, index_aliases


class TestOrganizationFilter:
    """Tests for the player organization filter."""

    def test_pro_league_adds_college(self):
        assert organization_filter(1) == [1, 5]
        assert organization_filter(4) == [4, 5]

    def test_college_only(self):
        assert organization_filter(5) == [5]

    def test_other_organization(self):
        assert organization_filter(7) == [7]

    def test_no_filter(self):
        assert organization_filter(None) is None


class TestGroupPlayers:
    """Tests for grouping player rows."""

    def test_teams_grouped_and_deduplicated(self):
        trout = Player(1, 'Mike', 'Trout')
        angels = Team(1, 'Los Angeles Angels')
        rows = [(trout, angels), (trout, angels), (Player(2, 'Aaron', 'Judge'), None)]
        records = group_players(rows)
        assert len(records) == 2
        assert records[0].teams == [angels]
        assert records[1].teams == []

    def test_aliases_normalized(self):
        aliases = index_aliases([PlayerAlias(6, 'Sho Time'), PlayerAlias(6, 'SHO  TIME')])
        assert aliases == {'sho time': [6]}


class TestBuild:
    """Tests for building the reference index."""

    def test_one_batch_call_per_entity_type(self, catalog, make_card):
        cards = [
            make_card(player_names='Mike Trout', team_names='Angels'),
            make_card(player_names='Aaron Judge', team_names='Yankees'),
            make_card(player_names='Steven Kwan', team_names='Angels', year=2023),
        ]
        ReferenceIndex.build(catalog, cards, organization_id=1)
        assert catalog.count('find_teams_matching_any') == 1
        assert catalog.count('find_players_with_teams') == 1
        assert catalog.count('find_player_aliases') == 1
        assert catalog.count('find_sets') == 2
        assert catalog.count('find_colors') == 0

    def test_team_query_uses_distinct_normalized_names(self, catalog, make_card):
        cards = [
            make_card(team_names='Wolf Pack'),
            make_card(team_names='Wolfpack / Angels'),
        ]
        ReferenceIndex.build(catalog, cards)
        (name, args), = [c for c in catalog.calls if c[0] == 'find_teams_matching_any']
        assert args[0] == ['wolfpack', 'angels']

    def test_players_grouped_with_teams(self, catalog, make_card):
        index = ReferenceIndex.build(catalog, [make_card()])
        ohtani = index.record(6)
        assert [t.team_id for t in ohtani.teams] == [1, 5]

    def test_organization_filter_applied(self, catalog, make_card):
        index = ReferenceIndex.build(catalog, [make_card()], organization_id=4)
        ids = {r.player.player_id for r in index.players}
        # Hockey set: NHL players plus college players
        assert 12 in ids
        assert 11 in ids
        assert 1 not in ids

    def test_placeholder_teams_for_cards_without_team(self, catalog, make_card):
        index = ReferenceIndex.build(catalog, [make_card(team_names='')])
        assert [t.team_id for t in index.placeholder_teams] == [8]
        assert index.teams == []

    def test_colors_loaded_when_needed(self, catalog, make_card):
        index = ReferenceIndex.build(catalog, [make_card(color_name='Gold')])
        assert catalog.count('find_colors') == 1
        assert len(index.colors) == 3

    def test_sets_loaded_lazily_for_new_year(self, catalog, make_card):
        index = ReferenceIndex.build(catalog, [make_card(year=2024)])
        assert [s.set_id for s in index.sets_for_year(2023)] == [2]
        index.sets_for_year(2023)
        assert catalog.count('find_sets') == 2

    def test_associations_attached_in_one_call(self, catalog, make_card):
        index = ReferenceIndex.build(catalog, [make_card()])
        index.attach_associations([(1, 1), (1, 2), (7, 5)])
        assert catalog.count('find_existing_player_team_associations') == 1
        assert index.association_id(1, 1) == 100
        assert index.association_id(7, 5) == 107
        assert index.association_id(1, 2) is None
        assert index.has_association(1, 1)

    def test_no_pairs_no_call(self, catalog, make_card):
        index = ReferenceIndex.build(catalog, [make_card()])
        index.attach_associations([])
        assert catalog.count('find_existing_player_team_associations') == 0


class TestDegradation:
    """Tests for catalog failures while building the index."""

    def test_failed_team_query_degrades(self, make_catalog, make_card):
        catalog = make_catalog(fail={'find_teams_matching_any'})
        index = ReferenceIndex.build(catalog, [make_card()])
        assert index.teams == []
        assert index.failures == ['teams']
        assert index.record(1) is not None

    def test_failed_series_query_degrades(self, make_catalog, make_card):
        catalog = make_catalog(fail={'find_series_by_set'})
        index = ReferenceIndex.build(catalog, [make_card()])
        assert index.series_for_set(1) == []
        assert 'series:1' in index.failures

    def test_all_queries_failed(self, make_catalog, make_card):
        catalog = make_catalog(fail={
            'find_players_with_teams', 'find_player_aliases',
            'find_teams_matching_any', 'find_sets',
        })
        with pytest.raises(CatalogUnavailable):
            ReferenceIndex.build(catalog, [make_card()])


class TestInMemoryCatalog:
    """Tests for the in-memory catalog queries."""

    def test_teams_matching_any(self, catalog):
        teams = catalog.find_teams_matching_any(['angels', 'nyy'])
        assert {t.team_id for t in teams} == {1, 2}

    def test_teams_organization_filter(self, catalog):
        assert catalog.find_teams_matching_any(['wolfpack'], [1]) == []

    def test_empty_candidates(self, catalog):
        assert catalog.find_teams_matching_any(['', '  ']) == []

    def test_existing_card(self, catalog):
        assert catalog.find_existing_card(10, ' 1 ').card_id == 500
        assert catalog.find_existing_card(10, '1', [100]).card_id == 500
        assert catalog.find_existing_card(10, '1', [101]) is None
        assert catalog.find_existing_card(11, '1') is None
