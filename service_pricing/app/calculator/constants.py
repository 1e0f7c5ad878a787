"""
Fixed pricing constants.
"""

# GST percent applied to every subtotal; not configurable per plan
GST_RATE_PERCENT = 18

MONTHS_PER_YEAR = 12

# Upper bounds (exclusive) of each price tier, checked in order
TIER_BREAKPOINTS = (
    (1000, "basic"),
    (2500, "standard"),
    (5000, "professional"),
)
TOP_TIER = "enterprise"

# A plan is recommended when needed beds fall within
# [base * MIN_FILL, base + (max - base) * CAPACITY_SHARE]
RECOMMENDATION_MIN_FILL = 0.7
RECOMMENDATION_CAPACITY_SHARE = 0.8
