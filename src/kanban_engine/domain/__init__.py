from .models import ChangeEvent, Member, Project, ProjectSnapshot, Stage, Task, now_iso

__all__ = ["ChangeEvent", "Member", "Project", "ProjectSnapshot", "Stage", "Task", "now_iso"]
