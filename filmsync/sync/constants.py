"""Constants for group-scoped synchronization."""

# Family names used for storage keys, logging and the public context API.
FAMILY_MOVIES = "movies"
FAMILY_RATINGS = "ratings"
FAMILY_MEMBERS = "members"
FAMILY_GOALS = "goals"
FAMILIES = (FAMILY_MOVIES, FAMILY_RATINGS, FAMILY_MEMBERS, FAMILY_GOALS)

# Remote record types
RECORD_TYPE_MOVIE = "Movie"
RECORD_TYPE_RATING = "Rating"
RECORD_TYPE_MEMBER = "GroupMember"
RECORD_TYPE_ANNUAL_GOAL = "ViewingGoal"
RECORD_TYPE_CUSTOM_GOALS = "ViewingCustomGoals"

# Remote field names
FIELD_GROUP_ID = "groupId"
FIELD_GROUP_NAME = "groupName"
FIELD_PAYLOAD = "payload"
FIELD_UPDATED_AT = "updatedAt"
FIELD_IS_BACKLOG = "isBacklog"
FIELD_MOVIE_ID = "movieId"
FIELD_REVIEWER_NAME = "reviewerName"
FIELD_NAME = "name"
FIELD_YEAR = "year"
FIELD_TARGET = "target"

# Scope token hashed into identities for the "no group" workspace.
NO_GROUP_TOKEN = "nogroup"

CUSTOM_GOALS_NATURAL_KEY = "custom-goals"

DEFAULT_PAGE_SIZE = 100
