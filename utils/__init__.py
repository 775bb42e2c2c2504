# Core logic and shared services of the staff hierarchy bot
