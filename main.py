"""
Main entry point for the Quoting System.
Provides command-line interface and system initialization.
"""

import asyncio
import argparse
import sys

from utils import qm_logger, api_logger, config_manager, initialize_logging, format_currency

from quote_manager import quote_manager


# 示例材料目录
SAMPLE_MATERIALS = [
    {'name': 'Portland Cement', 'unit': 'kg', 'unit_price': 15.50,
     'description': 'Type I Portland cement for general construction'},
    {'name': 'Sand', 'unit': 'm³', 'unit_price': 45.00,
     'description': 'Washed river sand for construction'},
    {'name': 'Gravel', 'unit': 'm³', 'unit_price': 55.00,
     'description': 'Crushed 3/4" gravel for concrete'},
    {'name': 'Bricks', 'unit': 'unit', 'unit_price': 2.50,
     'description': 'Fired clay bricks 6x12x24 cm'},
    {'name': 'Rebar 3/8"', 'unit': 'm', 'unit_price': 12.00,
     'description': 'Corrugated steel rebar 3/8"'},
    {'name': 'Rebar 1/2"', 'unit': 'm', 'unit_price': 18.50,
     'description': 'Corrugated steel rebar 1/2"'},
    {'name': 'Interior Paint', 'unit': 'l', 'unit_price': 25.00,
     'description': 'Vinyl paint for interiors'},
    {'name': 'Exterior Paint', 'unit': 'l', 'unit_price': 35.00,
     'description': 'Acrylic paint for exteriors'},
    {'name': 'Tie Wire', 'unit': 'kg', 'unit_price': 8.50,
     'description': 'Annealed #16 wire for tying rebar'},
    {'name': 'Plaster', 'unit': 'kg', 'unit_price': 5.20,
     'description': 'Plaster for interior finishes'},
]

# 示例报价，material 为 SAMPLE_MATERIALS 下标；statuses 为依次迁移的状态
SAMPLE_QUOTES = [
    {
        'client': 'Juan Pérez',
        'project': 'Perimeter wall construction',
        'items': [(0, 500), (1, 2), (3, 1000)],
        'labor': {'hours': 16, 'rate_per_hour': 25},
        'painting': {'area_sq_meters': 0, 'rate_per_sq_meter': 15},
        'notes': 'Quote approved by the client',
        'statuses': ['sent', 'approved'],
    },
    {
        'client': 'María García',
        'project': 'House painting',
        'items': [(6, 20), (7, 15)],
        'labor': {'hours': 24, 'rate_per_hour': 25},
        'painting': {'area_sq_meters': 120, 'rate_per_sq_meter': 15},
        'notes': 'Awaiting approval',
        'statuses': ['sent'],
    },
    {
        'client': 'Carlos López',
        'project': 'Foundation for extension',
        'items': [(0, 800), (1, 3), (2, 3), (4, 50)],
        'labor': {'hours': 32, 'rate_per_hour': 25},
        'painting': {'area_sq_meters': 0, 'rate_per_sq_meter': 15},
        'notes': 'Quote under review',
        'statuses': [],
    },
]


class QuotingSystem:
    """报价系统主类"""

    def __init__(self, manager=None):
        self.config = config_manager
        self.manager = manager or quote_manager

    async def initialize(self):
        """初始化系统（数据库连接和数据表）"""
        try:
            qm_logger.info("[Main] Initializing Quoting System...")
            await self.manager.initialize()
            qm_logger.info("[Main] Quoting System initialized successfully")
        except Exception as e:
            qm_logger.error(f"[Main] Failed to initialize system: {e}")
            raise

    def start_api_server(self, host: str = None, port: int = None):
        """启动API服务器"""
        from api.app import run_server

        api_config = self.config.get_api_config()
        api_logger.info(f"[Main] API config - workers: {api_config.workers}, reload: {api_config.reload}")
        run_server(host=host, port=port)

    async def seed(self, clear: bool = False):
        """写入示例材料和报价，报价经过正常的新建流程"""
        if clear:
            await self.manager.db_ops.clear_all()

        materials = []
        for data in SAMPLE_MATERIALS:
            materials.append(await self.manager.create_material({**data, 'active': True}))
        qm_logger.info(f"[Main] Inserted {len(materials)} materials")

        quotes = []
        for sample in SAMPLE_QUOTES:
            quote = await self.manager.create_quote({
                'client': sample['client'],
                'project': sample['project'],
                'line_items': [
                    {'material_id': materials[index]['id'], 'quantity': quantity}
                    for index, quantity in sample['items']
                ],
                'labor': sample['labor'],
                'painting': sample['painting'],
                'notes': sample['notes'],
            })
            for status in sample['statuses']:
                quote = await self.manager.update_quote_status(quote['id'], status)
            quotes.append(quote)

        print(f"Seed completed: {len(materials)} materials, {len(quotes)} quotes")
        for quote in quotes:
            print(f"   {quote['number']}  {quote['client']:<15} {quote['status']:<9} "
                  f"{format_currency(quote['grand_total'])}")
        return materials, quotes

    async def show_statistics(self):
        """显示仪表盘摘要"""
        summary = await self.manager.get_dashboard_summary()

        print("\n" + "=" * 60)
        print("         QUOTING SYSTEM SUMMARY")
        print("=" * 60)
        print(f"   Quotes:            {summary['total_quotes']:,}")
        print(f"   Quotes this month: {summary['quotes_this_month']:,}")
        print(f"   Active materials:  {summary['total_materials']:,}")
        print(f"   Total billed:      {format_currency(summary['total_billed'])}")
        print("=" * 60)
        return summary

    async def shutdown(self):
        """关闭系统"""
        try:
            await self.manager.close()
            qm_logger.info("[Main] Quoting System shutdown completed")
        except Exception as e:
            qm_logger.error(f"[Main] Error during shutdown: {e}")


def create_parser():
    """创建命令行参数解析器"""
    parser = argparse.ArgumentParser(
        description="Quoting System - materials catalog and quote management",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
使用示例:
  python main.py api --host 0.0.0.0 --port 8000  # 启动API服务器
  python main.py init-db                        # 创建数据表
  python main.py seed --clear                   # 清空并写入示例数据
  python main.py stats                          # 显示统计摘要
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='可用命令')

    # API服务器
    api_parser = subparsers.add_parser('api', help='启动API服务器')
    api_parser.add_argument('--host', default=None, help='监听地址 (默认取配置)')
    api_parser.add_argument('--port', type=int, default=None, help='监听端口 (默认取配置)')

    # 初始化数据库
    subparsers.add_parser('init-db', help='创建数据表')

    # 示例数据
    seed_parser = subparsers.add_parser('seed', help='写入示例材料和报价')
    seed_parser.add_argument('--clear', action='store_true', help='写入前清空已有数据')

    # 统计
    subparsers.add_parser('stats', help='显示统计摘要')

    return parser


async def run_command(system: QuotingSystem, args) -> None:
    await system.initialize()
    try:
        if args.command == 'init-db':
            print("Database tables created")
        elif args.command == 'seed':
            await system.seed(clear=args.clear)
        elif args.command == 'stats':
            await system.show_statistics()
    finally:
        await system.shutdown()


def main(argv=None):
    """主函数"""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    initialize_logging()
    system = QuotingSystem()

    try:
        if args.command == 'api':
            # uvicorn 自行管理事件循环，数据库在应用生命周期内初始化
            system.start_api_server(host=args.host, port=args.port)
        else:
            asyncio.run(run_command(system, args))

    except KeyboardInterrupt:
        qm_logger.info("[Main] Received keyboard interrupt")
    except Exception as e:
        qm_logger.error(f"[Main] System error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
