"""Telegram Mini App authentication for the SubTrack subscription tracker."""
