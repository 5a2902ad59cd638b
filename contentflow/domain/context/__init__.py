# Context assembly for a single step turn

#  +---------------------+      +---------------------+
#  |  Semantic search    |      |   Profile store     |
#  |---------------------|      |---------------------|
#  | global templates    |      | company / industry  |
#  | org conversations   |      | role / tone         |
#  | org documents       |      | usage statistics    |
#  +---------------------+      +---------------------+
#             \                        /
#              \   classify+sanitize  /
#               v                    v
#  +------------------------------------------+
#  |             ContextBundle                |   (per request, never cached)
#  |------------------------------------------|
#  | profile summary                          |
#  | ranked conversations / documents         |
#  | suggestions, sanitized user query        |
#  +------------------------------------------+
#                     |
#                     v
#  [PromptContextInjector -> header + base instructions -> model]
