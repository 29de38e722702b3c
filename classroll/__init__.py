"""ClassRoll: enrollment invitations and guardian registration onboarding."""
