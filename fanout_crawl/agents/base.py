"""
基础 Agent 类
定义所有协作者 Agent 的通用接口和统计指标
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Dict
from loguru import logger


class BaseAgent(ABC):
    """
    基础 Agent 抽象类
    所有具体的 Agent 都需要继承此类并实现 process 方法
    """

    def __init__(self, name: str, config: Dict[str, Any] = None):
        """
        初始化基础 Agent

        Args:
            name: Agent 名称
            config: 配置字典
        """
        self.name = name
        self.config = config or {}
        self._metrics = {
            "processed": 0,
            "success": 0,
            "failed": 0,
            "total_time": 0.0,
        }

    @abstractmethod
    async def process(self, input_data: Any) -> Any:
        """
        处理输入数据并返回结果

        Args:
            input_data: 输入数据

        Returns:
            处理结果
        """

    @abstractmethod
    def can_process(self, input_data: Any) -> bool:
        """检查是否能够处理该输入数据"""

    async def process_with_metrics(self, input_data: Any) -> Any:
        """
        带指标统计的处理方法
        失败会计入指标后原样抛出，由上层（Waitable / 编排器）决定如何处理

        Args:
            input_data: 输入数据

        Returns:
            处理结果
        """
        self._metrics["processed"] += 1
        start_time = time.time()

        if not self.can_process(input_data):
            self._metrics["failed"] += 1
            raise ValueError(f"[{self.name}] Cannot process input: {input_data!r}")

        try:
            result = await self.process(input_data)
        except Exception as e:
            self._metrics["failed"] += 1
            logger.debug(f"[{self.name}] Error processing {input_data!r}: {e}")
            raise
        finally:
            self._metrics["total_time"] += time.time() - start_time

        self._metrics["success"] += 1
        return result

    def get_metrics(self) -> Dict[str, Any]:
        """获取 Agent 的统计指标"""
        return self._metrics.copy()

    def log_metrics(self) -> None:
        """打印统计指标"""
        logger.info(f"[{self.name}] Metrics: {self._metrics}")
