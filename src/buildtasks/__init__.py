"""Reusable build tasks, importable as an extension source.

List this package under ``ModuleBuildTasks`` in the build configuration and
select the tasks to import with wildcard patterns::

    ModuleBuildTasks:
      buildtasks: ["*"]

Keep one concern per module.
"""
