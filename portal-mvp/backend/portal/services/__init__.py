"""
Application services.

每个函数第一个参数都是 RequestContext；主操作在 transaction.atomic() 里完成，
审计和事件发布在事务块退出之后做，失败只记日志。
"""
