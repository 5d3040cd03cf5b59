"""Tests for the Tic Tac Toe relay."""
