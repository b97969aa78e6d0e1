"""Tests for movie, rating and member domain models."""

import unittest
import uuid

from filmsync.domain.member import Member, canonical_name, sort_members
from filmsync.domain.movie import CastMember, Movie, legacy_person_id
from filmsync.domain.rating import Rating, RatingCriterion, merge_ratings

MOVIE_ID = "6f1c2a9e-2d6b-4a57-9a55-0d3c3c1f2b10"


class TestMovie(unittest.TestCase):
    def test_payload_round_trip_uses_camel_case(self):
        movie = Movie(id=MOVIE_ID, title="Alien", year="1979", tmdb_id=348, is_backlog=True)

        payload = movie.to_payload()

        assert '"tmdbId":348' in payload
        assert '"isBacklog":true' in payload
        assert Movie.from_payload(payload) == movie

    def test_id_is_normalized(self):
        movie = Movie(id=MOVIE_ID.upper(), title="Alien")
        assert movie.id == MOVIE_ID

    def test_invalid_id_is_rejected(self):
        with self.assertRaises(ValueError):
            Movie(id="not-a-uuid", title="Alien")

    def test_default_id_is_uuid(self):
        uuid.UUID(Movie(title="Alien").id)

    def test_legacy_cast_names_are_migrated(self):
        """Plain-name cast lists become cast members with stable negative ids."""
        movie = Movie.from_payload(
            f'{{"id": "{MOVIE_ID}", "title": "Alien", "cast": ["Sigourney Weaver", " "]}}'
        )

        assert movie.cast == [
            CastMember(person_id=legacy_person_id("Sigourney Weaver"), name="Sigourney Weaver")
        ]

    def test_structured_cast_is_kept(self):
        movie = Movie(
            id=MOVIE_ID, title="Alien", cast=[{"personId": 10205, "name": "Sigourney Weaver"}]
        )
        assert movie.cast[0].person_id == 10205

    def test_unknown_payload_fields_are_ignored(self):
        movie = Movie.from_payload(f'{{"id": "{MOVIE_ID}", "title": "Alien", "rating": 5}}')
        assert movie.title == "Alien"


class TestLegacyPersonId(unittest.TestCase):
    def test_is_negative_and_stable(self):
        value = legacy_person_id("Tom Hanks")
        assert value < 0
        assert value == legacy_person_id("  tom hanks ")
        assert value >= -(2**31 - 1)

    def test_differs_between_names(self):
        assert legacy_person_id("Tom Hanks") != legacy_person_id("Meg Ryan")


class TestRating(unittest.TestCase):
    def test_scores_are_clamped(self):
        rating = Rating(
            movie_id="m1",
            reviewer_name="Ana",
            scores={RatingCriterion.ACTION: 5, RatingCriterion.MUSIC: -1},
        )
        assert rating.scores == {RatingCriterion.ACTION: 3, RatingCriterion.MUSIC: 0}

    def test_averages(self):
        rating = Rating(
            movie_id="m1",
            reviewer_name="Ana",
            scores={RatingCriterion.ACTION: 3, RatingCriterion.SUSPENSE: 0},
        )
        assert rating.average_stars == 1.5
        assert rating.average_score_normalized_to_10 == 5.0
        assert Rating(movie_id="m1", reviewer_name="Ana").average_stars == 0.0

    def test_payload_round_trip(self):
        rating = Rating(
            movie_id="m1", reviewer_name="Ana", scores={"action": 2}, comment="Loud"
        )
        payload = rating.to_payload()
        assert '"movieId":"m1"' in payload
        assert Rating.from_payload(payload) == rating

    def test_merge_keeps_one_rating_per_reviewer(self):
        """Reviewer names compare case-insensitively; the later rating wins."""
        first = Rating(movie_id="m1", reviewer_name="Bob", scores={"action": 1})
        other = Rating(movie_id="m1", reviewer_name="Ana")
        second = Rating(movie_id="m1", reviewer_name="BOB", scores={"action": 3})
        other_movie = Rating(movie_id="m2", reviewer_name="bob")

        merged = merge_ratings([first, other], [second, other_movie])

        assert merged == [second, other, other_movie]


class TestMembers(unittest.TestCase):
    def test_canonical_name(self):
        assert canonical_name("  Alice ") == "alice"
        assert Member(name="Alice").key == "alice"

    def test_sort_members_dedups_case_insensitively(self):
        members = sort_members(
            [Member(name="bob"), Member(name="Alice"), Member(name="BOB"), Member(name=" ")]
        )
        assert [member.name for member in members] == ["Alice", "BOB"]
