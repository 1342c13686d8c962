from votecore.models.student import Student
from votecore.models.student_details import StudentDetails
from votecore.models.sms_otp import SmsOtp
from votecore.models.voting_category import VotingCategory
from votecore.models.candidate import Candidate
from votecore.models.vote import Vote
from votecore.models.voting_status import VotingStatus
from votecore.models.voter_session import VoterSession

__all__ = [
    "Student", "StudentDetails", "SmsOtp", "VotingCategory",
    "Candidate", "Vote", "VotingStatus", "VoterSession",
]
