# State = everything needed to resume a workflow: which step is current,
# the status of every step, and the data each step has collected or generated.

# Writes go through the repository one call at a time, each bumping the step
# version. A transition is three writes, in this order:

# 1. step payload + complete

# 2. next step in_progress

# 3. workflow current-step pointer

# A crash between writes leaves a state the engine can resume from.
