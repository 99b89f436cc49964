from .invitations import InvitationReport, InvitationService, build_ics

__all__ = ["InvitationReport", "InvitationService", "build_ics"]
