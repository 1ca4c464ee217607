"""
Tourney - tournament management backend

Responsibilities:
- Accounts and organizations with role-based membership
- Tournament catalog (tournaments, categories)
- Team formation and invitations
- Registrations and payment flags
- Notification fan-out from lifecycle events
- Match history and player statistics
"""
