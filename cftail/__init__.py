"""
cftail - tail CloudFormation stack events in real time.

Watches one or more stacks (optionally including their nested stacks),
merges the per-stack event streams into a single time-ordered feed and
stops once the stacks you asked about finish deploying.
"""

__version__ = "0.1.0"
