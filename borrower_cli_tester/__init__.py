"""End-to-end loan lifecycle tester for the borrower CLI."""
