from .base import Base

# Tournament structure
from .tournament import Tournament, TournamentParticipant, TournamentJudge
from .round import Round, RubricCriterion
from .media import MediaAsset
from .match import Match, MatchParticipant, MatchTrack
from .submission import Submission

# Judging
from .judging import JudgeAssignment, Evaluation, EvaluationTrackScore

# Read views
from .leaderboard import MatchTrackScore, TournamentLeaderboardEntry
