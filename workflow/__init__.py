"""Workflow engine package.

Subpackages:
- engine: Step model, execution state, graph compilation and the GraphEngine
- nodes: Node runtimes for each step type
- handlers: Named Code step handlers and their registry
- agents: LLM agent backends (Claude CLI, Anthropic API)
- automation: Status-change automations, transitions and their expression language
- workflows: Built-in workflow definitions (topic Q&A, issue planning)
"""
