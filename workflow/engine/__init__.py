"""Graph execution engine.

Modules:
- definitions: step and workflow data model
- state: execution state, node patches and results
- graph_builder: validation and compilation into node runtimes
- executor: GraphEngine (run / resume / pause / cancel / retry)
- store, catalog, events: persistence, workflow lookup and event contracts
- safe_eval, templating: condition evaluation and prompt rendering
"""
